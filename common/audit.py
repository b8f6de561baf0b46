import json
import logging
import uuid

from django.core.serializers.json import DjangoJSONEncoder

from core.models import AuditLog

logger = logging.getLogger("audit")


def _as_uuid(value):
    if value is None or value == "":
        return None
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _to_json(value):
    # Decimals and datetimes from serializer data must survive the JSONField round trip.
    if value is None:
        return None
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


def changed_fields(before, after):
    """Keys whose values differ between two snapshot dicts."""
    if not isinstance(before, dict) or not isinstance(after, dict):
        return []
    return sorted(key for key in before.keys() | after.keys() if before.get(key) != after.get(key))


def record_audit(*, action, entity, entity_id=None, actor=None, before_snapshot=None, after_snapshot=None, request_id=None):
    before_snapshot = _to_json(before_snapshot)
    after_snapshot = _to_json(after_snapshot)
    entry = AuditLog.objects.create(
        actor=actor,
        action=action,
        entity=entity,
        entity_id=_as_uuid(entity_id),
        before_snapshot=before_snapshot,
        after_snapshot=after_snapshot,
        request_id=request_id,
    )
    logger.info(
        "audit action=%s entity=%s entity_id=%s actor=%s changed=%s",
        action,
        entity,
        entry.entity_id,
        getattr(actor, "username", None),
        ",".join(changed_fields(before_snapshot, after_snapshot)),
        extra={"request_id": request_id},
    )
    return entry


def create_audit_log_from_request(request, *, action, entity, entity_id=None, before_snapshot=None, after_snapshot=None):
    user = getattr(request, "user", None)
    return record_audit(
        action=action,
        entity=entity,
        entity_id=entity_id,
        actor=user if user is not None and user.is_authenticated else None,
        before_snapshot=before_snapshot,
        after_snapshot=after_snapshot,
        request_id=getattr(request, "request_id", None) or request.headers.get("X-Request-ID"),
    )
