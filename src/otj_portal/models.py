"""Database models for weekly OTJ tracking."""

from datetime import date, datetime

from flask_sqlalchemy import SQLAlchemy

from otj_portal.progress import calculate_progress, derive_status, effective_status

db = SQLAlchemy()


class User(db.Model):
    """An authenticated user of the portal (learner or staff)."""

    __tablename__ = "app_user"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255))
    google_sub = db.Column(db.String(255), unique=True)
    role = db.Column(db.String(50), nullable=False, default="learner")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    selected_standard = db.Column(db.String(20), nullable=True)  # e.g. 'ST0763'
    otj_target_hours = db.Column(db.Float, nullable=True)  # total OTJ hours target for the apprenticeship

    entries = db.relationship("OtjLogEntry", backref="learner", lazy="select")

    ROLES = [
        ("learner", "Learner"),
        ("admin", "Administrator"),
        ("training_provider", "Training Provider"),
        ("assessor", "Assessor / Tutor"),
        ("iqa", "Internal Quality Assurer"),
        ("operations", "Operations"),
    ]

    # Roles allowed to view any learner's weeks and to review them
    TUTOR_ROLES = frozenset({"assessor", "training_provider", "admin", "iqa"})

    @property
    def is_tutor(self) -> bool:
        return self.role in self.TUTOR_ROLES


class OtjLogEntry(db.Model):
    """A single off-the-job training activity logged by a learner."""

    __tablename__ = "otj_log_entry"

    id = db.Column(db.Integer, primary_key=True)
    learner_id = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=False, index=True)
    entry_date = db.Column(db.Date, nullable=False, default=date.today)
    hours = db.Column(db.Float, nullable=False)  # decimal hours
    description = db.Column(db.Text, nullable=False, default="")
    activity_type = db.Column(db.String(50), nullable=False, default="self_study")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    ACTIVITY_TYPES = [
        ("training_course", "Training Course"),
        ("self_study", "Self-Study"),
        ("mentoring", "Mentoring"),
        ("shadowing", "Shadowing"),
        ("workshop", "Workshop"),
        ("project_work", "Project Work"),
        ("research", "Research"),
        ("writing", "Writing / Reflection"),
        ("other", "Other"),
    ]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "entry_date": self.entry_date.isoformat(),
            "hours": self.hours,
            "description": self.description or "",
            "activity_type": self.activity_type,
        }


class WeeklyOtjRecord(db.Model):
    """Hours logged by one learner in one week.

    ``status`` is never stored: it is derived from the hours, the copied
    minimum and the calendar.  A tutor decision lives in ``status_override``
    so it can always be told apart from the computed value.
    """

    __tablename__ = "weekly_otj_record"

    id = db.Column(db.Integer, primary_key=True)
    learner_id = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=False)
    week_start_date = db.Column(db.Date, nullable=False)
    week_end_date = db.Column(db.Date, nullable=False)
    total_hours = db.Column(db.Float, nullable=False, default=0.0)
    minimum_required_hours = db.Column(db.Float, nullable=False)  # copied from the standard at creation
    entry_mode = db.Column(db.String(20), nullable=False, default="manual")
    notes = db.Column(db.Text, default="")
    status_override = db.Column(db.String(20), nullable=True)
    tutor_notes = db.Column(db.Text, nullable=True)
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    tutor_review_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    learner = db.relationship("User", foreign_keys=[learner_id])
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id])

    __table_args__ = (
        db.UniqueConstraint("learner_id", "week_start_date", name="uq_weekly_otj_learner_week"),
    )

    ENTRY_MODES = [
        ("manual", "Single weekly total"),
        ("entries", "Sum of log entries"),
    ]

    def progress(self):
        return calculate_progress(self.total_hours, self.minimum_required_hours)

    def computed_status(self, today: date | None = None) -> str:
        return derive_status(
            self.total_hours,
            self.minimum_required_hours,
            self.week_end_date,
            today or date.today(),
        )

    def status(self, today: date | None = None) -> str:
        return effective_status(self.computed_status(today), self.status_override)

    def to_dict(self, today: date | None = None) -> dict:
        progress = self.progress()
        return {
            "id": self.id,
            "learner_id": self.learner_id,
            "week_start_date": self.week_start_date.isoformat(),
            "week_end_date": self.week_end_date.isoformat(),
            "total_hours": self.total_hours,
            "minimum_required_hours": self.minimum_required_hours,
            "entry_mode": self.entry_mode,
            "notes": self.notes or "",
            "percentage": progress.percentage,
            "met": progress.met,
            "computed_status": self.computed_status(today),
            "status_override": self.status_override,
            "status": self.status(today),
            "tutor_notes": self.tutor_notes,
            "reviewed_by_id": self.reviewed_by_id,
            "tutor_review_date": self.tutor_review_date.isoformat() if self.tutor_review_date else None,
        }
