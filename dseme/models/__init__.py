"""
DSEME Role-Request Platform
SQLAlchemy database handle shared by every model module.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
