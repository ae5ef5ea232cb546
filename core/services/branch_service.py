"""
Branch Service - branch registry and per-actor visibility
"""
import logging
from typing import Dict, Any

from django.db import transaction

from core.models import Branch
from .base_service import (
    BaseService, success_response, ValidationError, NotFoundError, ConflictError,
)
from .scope_service import Actor, BranchScopeService, ALL_BRANCHES

logger = logging.getLogger(__name__)


class BranchService(BaseService):
    model = Branch

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, branch: Branch) -> Dict[str, Any]:
        return {
            "id": branch.id,
            "uuid": str(branch.uuid),
            "name": branch.name,
            "code": branch.code,
            "address": branch.address,
            "phone": branch.phone,
            "is_active": branch.is_active,
            "created_at": branch.created_at.isoformat(),
        }

    # ==================== READ ====================

    @classmethod
    def list(cls, actor: Actor, include_inactive: bool = False) -> Dict[str, Any]:
        scope = BranchScopeService.scope_for(actor)

        queryset = cls.model.objects.all()
        if scope != ALL_BRANCHES:
            queryset = queryset.filter(id=scope)
        elif not include_inactive:
            queryset = queryset.filter(is_active=True)

        return success_response({
            "branches": [cls.serialize(b) for b in queryset],
            "scope": scope,
        })

    @classmethod
    def get(cls, actor: Actor, branch_id: int) -> Dict[str, Any]:
        branch = cls.get_or_404(branch_id)
        BranchScopeService.require_branch_read(actor, branch.id)
        return success_response({"branch": cls.serialize(branch)})

    @classmethod
    def get_active_or_404(cls, branch_id) -> Branch:
        branch = cls.model.objects.filter(id=branch_id).first()
        if not branch:
            raise NotFoundError("Branch", branch_id)
        if not branch.is_active:
            raise ValidationError(f"Branch {branch.code} is inactive", "branch_id")
        return branch

    # ==================== WRITE (admin) ====================

    @classmethod
    @transaction.atomic
    def create(cls, actor: Actor, name: str, code: str, address: str = "", phone: str = "") -> Dict[str, Any]:
        BranchScopeService.require_role(actor)

        name = (name or "").strip()
        code = (code or "").strip().upper()
        if not name:
            raise ValidationError("Branch name is required", "name")
        if not code:
            raise ValidationError("Branch code is required", "code")
        if cls.model.objects.filter(code=code).exists():
            raise ConflictError(f"Branch code {code} already exists", details={"code": code})

        branch = cls.model.objects.create(name=name, code=code, address=address or "", phone=phone or "")
        logger.info("Branch created: %s by user=%s", branch.code, actor.id)

        return success_response({"branch": cls.serialize(branch)}, f"Branch {branch.code} created")

    @classmethod
    @transaction.atomic
    def update(cls, actor: Actor, branch_id: int, **kwargs) -> Dict[str, Any]:
        BranchScopeService.require_role(actor)
        branch = cls.get_or_404(branch_id)

        update_fields = ["updated_at"]

        if "name" in kwargs:
            name = (kwargs["name"] or "").strip()
            if not name:
                raise ValidationError("Branch name is required", "name")
            branch.name = name
            update_fields.append("name")

        if "code" in kwargs:
            code = (kwargs["code"] or "").strip().upper()
            if not code:
                raise ValidationError("Branch code is required", "code")
            if cls.model.objects.filter(code=code).exclude(id=branch.id).exists():
                raise ConflictError(f"Branch code {code} already exists", details={"code": code})
            branch.code = code
            update_fields.append("code")

        for field in ("address", "phone"):
            if field in kwargs:
                setattr(branch, field, kwargs[field] or "")
                update_fields.append(field)

        if "is_active" in kwargs:
            branch.is_active = bool(kwargs["is_active"])
            update_fields.append("is_active")

        branch.save(update_fields=update_fields)
        logger.info("Branch updated: %s fields=%s", branch.code, update_fields)

        return success_response({"branch": cls.serialize(branch)}, "Branch updated")

    @classmethod
    def deactivate(cls, actor: Actor, branch_id: int) -> Dict[str, Any]:
        # Branches are referenced by stock and sales, so they are never deleted
        result = cls.update(actor, branch_id, is_active=False)
        result["message"] = "Branch deactivated"
        return result
