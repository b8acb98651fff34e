# =============================================================================
# CropGuard API
# services/scan_service.py - Scan Record Service
#
# Persists detection results as owner-scoped scan records and answers the
# history queries: filtered listing, aggregate statistics, per-disease usage
# and deletion with best-effort release of the stored image.
# =============================================================================

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from cropguard.constants import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    SEVERITY_LEVELS,
    STATS_MONTHS,
)
from cropguard.errors import PersistenceError, ScanNotFoundError
from cropguard.extensions import db
from cropguard.models import ScanRecord

logger = logging.getLogger(__name__)


def _escape_like(text: str) -> str:
    return text.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def trailing_months(now: datetime, count: int = STATS_MONTHS) -> List[Tuple[int, int]]:
    """(year, month) pairs for the last `count` calendar months, oldest first."""
    year, month = now.year, now.month
    months = []
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


def empty_stats() -> Dict:
    return {
        'total_scans': 0,
        'last_scan_date': None,
        'most_common_disease': None,
        'average_confidence': 0,
        'scans_by_month': [],
        'disease_distribution': []
    }


class ScanRecordService:
    """
    Owner-scoped access to scan records.

    Every query filters on owner_id, so another owner's record is
    indistinguishable from a missing one.
    """

    def __init__(self, reference_store, image_store=None):
        self.reference_store = reference_store
        self.image_store = image_store

    def _owned(self, owner_id: str):
        return ScanRecord.query.filter(ScanRecord.owner_id == owner_id)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create(self, owner_id: str, result, declared_crop: str, image_ref) -> ScanRecord:
        """
        Persist a detection result with a snapshot of its disease profile.

        Raises:
            DiseaseNotFoundError: The detected disease is not in the reference store
            PersistenceError: The write failed
        """
        profile = self.reference_store.require(result.disease)

        record = ScanRecord.from_profile(
            owner_id,
            profile,
            image_url=image_ref.url,
            image_public_id=image_ref.public_id,
            crop_type=declared_crop,
            disease_detected=profile.name,
            confidence=result.confidence,
            severity=result.severity
        )

        try:
            db.session.add(record)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError('Failed to save scan') from e

        logger.info(
            f"Scan saved: ID={record.id}, owner={owner_id}, "
            f"crop={record.crop_type}, disease={record.disease_detected}"
        )
        return record

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def get(self, owner_id: str, scan_id: int) -> ScanRecord:
        try:
            record = self._owned(owner_id).filter(ScanRecord.id == scan_id).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError() from e

        if record is None:
            raise ScanNotFoundError()
        return record

    def list(
        self,
        owner_id: str,
        limit: int = DEFAULT_PAGE_LIMIT,
        offset: int = 0,
        crop_filter: Optional[str] = None,
        severity_filter: Optional[str] = None,
        text_search: Optional[str] = None
    ) -> Tuple[List[ScanRecord], int]:
        """
        List an owner's scans, newest first.

        Args:
            limit: Page size, capped at MAX_PAGE_LIMIT
            offset: Records to skip; past the end yields an empty page
            crop_filter: Case-insensitive crop equality
            severity_filter: Severity level, case-insensitive
            text_search: Case-insensitive substring on disease or crop

        Returns:
            tuple: (records, total matching count)

        Raises:
            PersistenceError: The query failed
        """
        limit = min(max(int(limit), 1), MAX_PAGE_LIMIT)
        offset = max(int(offset), 0)

        query = self._owned(owner_id)

        if crop_filter:
            query = query.filter(db.func.lower(ScanRecord.crop_type) == crop_filter.strip().lower())

        if severity_filter:
            levels = {level.lower(): level for level in SEVERITY_LEVELS}
            query = query.filter(ScanRecord.severity == levels.get(severity_filter.strip().lower(), severity_filter))

        if text_search and text_search.strip():
            pattern = f"%{_escape_like(text_search.strip())}%"
            query = query.filter(db.or_(
                ScanRecord.disease_detected.ilike(pattern, escape='\\'),
                ScanRecord.crop_type.ilike(pattern, escape='\\')
            ))

        try:
            total = query.count()
            records = query.order_by(
                ScanRecord.created_at.desc(),
                ScanRecord.id.desc()
            ).offset(offset).limit(limit).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError() from e

        return records, total

    def stats(self, owner_id: str, now: Optional[datetime] = None) -> Dict:
        """
        Aggregate statistics over all of an owner's scans.

        The most common disease is the mode of disease_detected; ties go to
        the disease seen first in newest-first order.

        Raises:
            PersistenceError: The query failed
        """
        try:
            rows = db.session.query(
                ScanRecord.disease_detected,
                ScanRecord.confidence,
                ScanRecord.created_at
            ).filter(
                ScanRecord.owner_id == owner_id
            ).order_by(
                ScanRecord.created_at.desc(),
                ScanRecord.id.desc()
            ).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError('Failed to fetch statistics') from e

        if not rows:
            return empty_stats()

        # Counter preserves first-insertion order among equal counts
        diseases = Counter(row.disease_detected for row in rows)
        most_common_disease = diseases.most_common(1)[0][0]

        average = sum(row.confidence for row in rows) / len(rows)

        now = now or datetime.now(timezone.utc)
        buckets = {key: 0 for key in trailing_months(now)}
        for row in rows:
            key = (row.created_at.year, row.created_at.month)
            if key in buckets:
                buckets[key] += 1

        return {
            'total_scans': len(rows),
            'last_scan_date': rows[0].created_at.isoformat(),
            'most_common_disease': most_common_disease,
            'average_confidence': round(average, 2),
            'scans_by_month': [
                {'month': datetime(year, month, 1).strftime('%b %Y'), 'count': count}
                for (year, month), count in buckets.items()
            ],
            'disease_distribution': [
                {'disease': disease, 'count': count}
                for disease, count in diseases.most_common()
            ]
        }

    def disease_usage(self, owner_id: str) -> Dict[str, Dict]:
        """
        Per-disease scan count and most recent scan time for an owner.

        Returns:
            dict: {disease: {'count': int, 'last_scanned': datetime}}
        """
        try:
            rows = db.session.query(
                ScanRecord.disease_detected,
                db.func.count(ScanRecord.id),
                db.func.max(ScanRecord.created_at)
            ).filter(
                ScanRecord.owner_id == owner_id
            ).group_by(ScanRecord.disease_detected).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError() from e

        return {
            disease: {'count': count, 'last_scanned': last_scanned}
            for disease, count, last_scanned in rows
        }

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def release_image(self, record: ScanRecord) -> bool:
        """Delete the record's stored image. Failures are logged, never raised."""
        if not record.image_public_id or self.image_store is None:
            return False

        try:
            self.image_store.delete(record.image_public_id)
            return True
        except Exception as e:
            logger.warning(f"Failed to release image {record.image_public_id} for scan {record.id}: {e}")
            return False

    def delete(self, owner_id: str, scan_id: int) -> None:
        """
        Delete one of the owner's scans.

        Raises:
            ScanNotFoundError: Missing id or another owner's record
            PersistenceError: The delete failed
        """
        record = self.get(owner_id, scan_id)
        self.release_image(record)

        try:
            db.session.delete(record)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError('Failed to delete scan') from e

        logger.info(f"Scan deleted: ID={scan_id}, owner={owner_id}")
