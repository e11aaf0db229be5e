from setuptools import setup, find_packages

setup(
    name="cleansort-backend",
    version="1.0.0",
    packages=find_packages(include=["cleansort", "cleansort.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "psycopg2-binary",
        "python-multipart",
        "openai",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings>=2.7",
        "firebase-admin>=6.2",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
