"""
Lab Report Workflow Service
SQLAlchemy models package.

The single ``db`` handle is created here and bound to the app in
``labflow.create_app``.  Model modules import it from this package.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
