from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()


class Job(db.Model):
    """A quoted/committed job. The scheduler reads these and writes queue_rank."""
    __tablename__ = "jobs"

    id = db.Column(db.String(64), primary_key=True)
    title = db.Column(db.String(256))
    customer_name = db.Column(db.String(128))
    project_address = db.Column(db.String(256))

    status = db.Column(db.String(16), nullable=False, default="estimate", index=True)  # estimate | pending | sold | void

    # Scheduling inputs
    labor_days = db.Column(db.Float)
    original_labor_days = db.Column(db.Float)
    hold_date = db.Column(db.Date)
    start_date = db.Column(db.Date)  # Explicit start request / capacity date
    scheduled_at = db.Column(db.DateTime)  # Estimate appointment
    allow_saturday = db.Column(db.Boolean, default=False)
    allow_sunday = db.Column(db.Boolean, default=False)
    queue_rank = db.Column(db.Integer, index=True)
    calendar_hidden = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)

    # Bumped on every UPDATE; a write computed from a stale row fails with StaleDataError
    version_id = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self):
        return f"<Job {self.id} - {self.status} - rank {self.queue_rank}>"

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'customer_name': self.customer_name,
            'project_address': self.project_address,
            'status': self.status,
            'labor_days': self.labor_days,
            'original_labor_days': self.original_labor_days,
            'hold_date': self.hold_date.isoformat() if self.hold_date else None,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'allow_saturday': bool(self.allow_saturday),
            'allow_sunday': bool(self.allow_sunday),
            'queue_rank': self.queue_rank,
            'calendar_hidden': bool(self.calendar_hidden),
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class BlockOut(db.Model):
    """A globally blocked, inclusive date range."""
    __tablename__ = "block_outs"

    id = db.Column(db.String(64), primary_key=True)
    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(120), nullable=False, default="Blocked")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<BlockOut {self.id} {self.start_date}..{self.end_date}>"

    def to_dict(self):
        return {
            'id': self.id,
            'start_date': self.start_date.isoformat() if self.start_date else None,
            'end_date': self.end_date.isoformat() if self.end_date else None,
            'description': self.description,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
