import os

# must be set before database.py builds its engine
os.environ["EXPENSES_DATABASE_URL"] = "sqlite://"
os.environ["EXPENSES_TIMEZONE"] = "UTC"
