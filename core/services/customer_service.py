from typing import Dict, Any, Optional

from core.models import Customer
from .base_service import BaseService, ValidationError


class CustomerService(BaseService):
    model = Customer

    @classmethod
    def serialize(cls, customer: Customer) -> Dict[str, Any]:
        return {
            "id": customer.id,
            "name": customer.name,
            "phone": customer.phone,
            "email": customer.email,
            "address": customer.address,
        }

    @classmethod
    def resolve(cls, customer_id=None, customer: Optional[Dict] = None) -> Dict[str, Any]:
        """
        Customer details for an order: either a linked Customer row or the
        name/phone captured inline on the order.
        """
        if customer_id not in (None, ""):
            linked = cls.get_or_404(customer_id)
            data = cls.serialize(linked)
            data["customer"] = linked
            return data

        customer = customer or {}
        name = str(customer.get("name") or "").strip()
        phone = str(customer.get("phone") or "").strip()
        if not name:
            raise ValidationError("Customer name is required", "customer.name")
        if not phone:
            raise ValidationError("Customer phone is required", "customer.phone")

        return {
            "id": None,
            "customer": None,
            "name": name,
            "phone": phone,
            "email": str(customer.get("email") or "").strip() or None,
            "address": str(customer.get("address") or "").strip() or None,
        }
