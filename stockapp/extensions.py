from flask_sqlalchemy import SQLAlchemy

from .services.notifications import LowStockNotifier

db = SQLAlchemy()
notifier = LowStockNotifier()
