"""Due-reminder notification dispatcher.

Scans reminders approaching their due date, repairs missing ownership, and
fans notifications out to every registered device of the owning user through
FCM, pruning tokens that FCM reports as permanently dead.
"""
