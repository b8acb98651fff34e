# =============================================================================
# CropGuard API
# models.py - Database Models
#
# SQLAlchemy ORM model for persisted scan records. Descriptive disease facts
# are copied onto each record at creation time and never refreshed.
# =============================================================================

import json
from datetime import datetime, timezone

from cropguard.extensions import db


def _dump_list(values):
    return json.dumps(list(values or []))


def _load_list(raw):
    return json.loads(raw) if raw else []


class ScanRecord(db.Model):
    """
    Scan record model for storing one disease detection per upload.

    Owned by an opaque user identity supplied by the identity provider.
    The symptom, treatment, prevention and organic treatment lists are stored
    as JSON strings.
    """
    __tablename__ = 'scan_records'

    # Primary Key
    id = db.Column(db.Integer, primary_key=True)

    # Owner identity (opaque id from the auth collaborator)
    owner_id = db.Column(db.String(255), nullable=False, index=True)

    # Image reference
    image_url = db.Column(db.String(1024), nullable=False)
    image_public_id = db.Column(db.String(255), nullable=True)

    # Detection results
    crop_type = db.Column(db.String(50), nullable=True, index=True)
    disease_detected = db.Column(db.String(100), nullable=False, index=True)
    confidence = db.Column(db.Float, nullable=False)
    severity = db.Column(db.String(20), nullable=False, index=True)

    # Frozen snapshot of the disease profile
    symptoms = db.Column(db.Text, nullable=True)
    treatment = db.Column(db.Text, nullable=True)
    prevention = db.Column(db.Text, nullable=True)
    organic_treatment = db.Column(db.Text, nullable=True)
    cost_estimate = db.Column(db.String(255), nullable=True)
    scientific_name = db.Column(db.String(255), nullable=True)

    # Timestamps
    created_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    # Indexes for common queries
    __table_args__ = (
        db.Index('idx_scan_owner_created', 'owner_id', 'created_at'),
        db.Index('idx_scan_owner_disease', 'owner_id', 'disease_detected'),
        db.Index('idx_scan_owner_severity', 'owner_id', 'severity'),
        db.Index('idx_scan_owner_crop', 'owner_id', 'crop_type'),
    )

    @classmethod
    def from_profile(cls, owner_id, profile, **fields):
        """
        Build a record carrying a snapshot of the given disease profile.

        Args:
            owner_id: Opaque owner identity
            profile: DiseaseProfile copied onto the record
            **fields: Remaining column values (image, crop, confidence, ...)

        Returns:
            ScanRecord: Unsaved record
        """
        return cls(
            owner_id=owner_id,
            symptoms=_dump_list(profile.symptoms),
            treatment=_dump_list(profile.treatment),
            prevention=_dump_list(profile.prevention),
            organic_treatment=_dump_list(profile.organic_treatment),
            cost_estimate=profile.cost_estimate,
            scientific_name=profile.scientific_name,
            **fields
        )

    def to_dict(self):
        """
        Serialize scan record to dictionary for API responses.

        Returns:
            dict: Scan record data dictionary
        """
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'image_url': self.image_url,
            'image_public_id': self.image_public_id,
            'crop_type': self.crop_type,
            'disease_detected': self.disease_detected,
            'confidence': self.confidence,
            'severity': self.severity,
            'symptoms': _load_list(self.symptoms),
            'treatment': _load_list(self.treatment),
            'prevention': _load_list(self.prevention),
            'organic_treatment': _load_list(self.organic_treatment),
            'cost_estimate': self.cost_estimate,
            'scientific_name': self.scientific_name,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<ScanRecord {self.id}: {self.crop_type} - {self.disease_detected}>'
