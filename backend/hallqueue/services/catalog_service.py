# backend/hallqueue/services/catalog_service.py
"""
Service Catalog

Requestable documents and their prices. Request items snapshot the price
when they are created, so an entry that is already referenced may only
change price_cents and is_active; renaming or re-templating it would
rewrite history on printed documents.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentRequestItem, ServiceType
from ..validation import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    coerce_bool,
    require_text,
    validate_price_cents,
)
from . import audit_service
from .concurrency import run_in_transaction
from .notification_service import publish

SERVICE_TYPE_MUTABLE_FIELDS = {"name", "template_key", "price_cents", "requires_purpose", "is_active"}

# Still editable after the first request item references the entry
REFERENCED_MUTABLE_FIELDS = {"price_cents", "is_active"}


def _validated_patch(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Service type payload must be an object")

    unknown = sorted(set(payload) - SERVICE_TYPE_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}", details={"fields": unknown})

    patch = {}
    if "name" in payload:
        patch["name"] = require_text(payload, "name")
    if "template_key" in payload:
        patch["template_key"] = require_text(payload, "template_key")
    if "price_cents" in payload:
        patch["price_cents"] = validate_price_cents(payload["price_cents"])
    if "requires_purpose" in payload:
        patch["requires_purpose"] = coerce_bool(payload["requires_purpose"], "requires_purpose")
    if "is_active" in payload:
        patch["is_active"] = coerce_bool(payload["is_active"], "is_active")
    return patch


def _get(service_type_id: int) -> ServiceType:
    service_type = db.session.get(ServiceType, service_type_id)
    if service_type is None:
        raise NotFoundError(
            f"Service type {service_type_id} not found",
            details={"service_type_id": service_type_id},
        )
    return service_type


def is_referenced(service_type_id: int) -> bool:
    return (
        db.session.query(DocumentRequestItem.id)
        .filter(DocumentRequestItem.service_type_id == service_type_id)
        .first()
        is not None
    )


def _name_taken(name: str, exclude_id: int | None = None) -> bool:
    q = db.session.query(ServiceType.id).filter(db.func.lower(ServiceType.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(ServiceType.id != exclude_id)
    return q.first() is not None


def list_service_types(*, active_only: bool = False) -> list[ServiceType]:
    q = db.session.query(ServiceType)
    if active_only:
        q = q.filter(ServiceType.is_active.is_(True))
    return q.order_by(ServiceType.name.asc(), ServiceType.id.asc()).all()


def get_service_type(service_type_id: int) -> ServiceType:
    return _get(service_type_id)


def create_service_type(payload: dict, *, actor: str | None = None) -> ServiceType:
    patch = _validated_patch(payload)
    for key in ("name", "template_key"):
        if key not in patch:
            raise ValidationError(f"{key} is required", details={"field": key})
    patch.setdefault("price_cents", 0)

    def _op():
        if _name_taken(patch["name"]):
            raise ValidationError(f"Service type {patch['name']!r} already exists", details={"field": "name"})
        service_type = ServiceType(**patch)
        db.session.add(service_type)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError(
                f"Service type {patch['name']!r} already exists", details={"field": "name"}
            ) from exc
        audit_service.record(
            audit_service.ServiceTypeChanged(changed_fields=sorted(patch)),
            entity_id=service_type.id,
            actor=actor,
        )
        return service_type

    service_type = run_in_transaction(_op)
    current_app.logger.info("Service type %s created: %s", service_type.id, service_type.name)
    publish("service_type", "created", service_type.id)
    return service_type


def update_service_type(service_type_id: int, payload: dict, *, actor: str | None = None) -> ServiceType:
    patch = _validated_patch(payload)
    if not patch:
        raise ValidationError("No changes supplied")

    def _op():
        service_type = _get(service_type_id)
        changed = sorted(k for k, v in patch.items() if getattr(service_type, k) != v)
        if not changed:
            return service_type, []

        locked = sorted(set(changed) - REFERENCED_MUTABLE_FIELDS)
        if locked and is_referenced(service_type.id):
            raise InvalidStateError(
                "Service type is referenced by requests; only price and availability can change",
                details={"service_type_id": service_type.id, "fields": locked},
            )
        if "name" in changed and _name_taken(patch["name"], exclude_id=service_type.id):
            raise ValidationError(f"Service type {patch['name']!r} already exists", details={"field": "name"})

        for key in changed:
            setattr(service_type, key, patch[key])
        db.session.flush()
        audit_service.record(
            audit_service.ServiceTypeChanged(changed_fields=changed),
            entity_id=service_type.id,
            actor=actor,
        )
        return service_type, changed

    service_type, changed = run_in_transaction(_op)
    if changed:
        current_app.logger.info("Service type %s updated: %s", service_type.id, ", ".join(changed))
        publish("service_type", "updated", service_type.id)
    return service_type


def set_service_active(service_type_id: int, is_active: bool, *, actor: str | None = None) -> ServiceType:
    return update_service_type(service_type_id, {"is_active": is_active}, actor=actor)


def toggle_service_active(service_type_id: int, *, actor: str | None = None) -> ServiceType:
    service_type = _get(service_type_id)
    return set_service_active(service_type_id, not service_type.is_active, actor=actor)


def delete_service_type(service_type_id: int, *, actor: str | None = None) -> None:
    """Hard delete; refused once any request item references the entry (deactivate instead)."""
    def _op():
        service_type = _get(service_type_id)
        if is_referenced(service_type.id):
            raise InvalidStateError(
                "Service type is referenced by requests; deactivate it instead",
                details={"service_type_id": service_type.id},
            )
        audit_service.record(
            audit_service.ServiceTypeChanged(changed_fields=["deleted"]),
            entity_id=service_type.id,
            actor=actor,
        )
        db.session.delete(service_type)
        db.session.flush()

    run_in_transaction(_op)
    current_app.logger.info("Service type %s deleted", service_type_id)
    publish("service_type", "deleted", service_type_id)
