from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Model
from django.utils import timezone


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    status_code = 400

    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field
        if field:
            self.details.setdefault("field", field)


class AuthorizationError(ServiceError):
    status_code = 403

    def __init__(self, message: str = "Access denied", details: Dict = None):
        super().__init__(message, "FORBIDDEN", details)


class NotFoundError(ServiceError):
    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class ConflictError(ServiceError):
    status_code = 409

    def __init__(self, message: str, code: str = "CONFLICT", details: Dict = None):
        super().__init__(message, code, details)


class InsufficientStockError(ConflictError):
    def __init__(self, product_name: str, branch_id: Any, required: int, available: int):
        super().__init__(
            f"Insufficient stock for {product_name}: required {required}, available {available}",
            "INSUFFICIENT_STOCK",
            {
                "product": product_name,
                "branch_id": branch_id,
                "required": required,
                "available": available,
            }
        )


class ImeiUnavailableError(ConflictError):
    def __init__(self, imei: str, reason: str = "already sold or reserved"):
        super().__init__(
            "imei not available",
            "IMEI_NOT_AVAILABLE",
            {"imei": imei, "reason": reason}
        )


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def paginate_queryset(queryset, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page)
    per_page = min(max(1, per_page), 100)

    total = queryset.count()
    total_pages = (total + per_page - 1) // per_page

    offset = (page - 1) * per_page
    items = list(queryset[offset:offset + per_page])

    return items, {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def parse_money(value: Any, field: str, default: Optional[Decimal] = None) -> Decimal:
    """Strict variant of to_decimal for caller-supplied amounts."""
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", field)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number", field)
    return round_money(amount)


def parse_int(value: Any, field: str, default: Optional[int] = None) -> int:
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field)
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be an integer", field)
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f"{field} must be an integer", field)
    return int(number)


def round_decimal(value: Decimal, places: int = 4) -> Decimal:
    if value is None:
        return Decimal("0")
    quantize_str = "0." + "0" * places if places else "0"
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    return round_decimal(value, getattr(settings, "POS_MONEY_PLACES", 2))


def money_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(round_money(value))


def generate_number(prefix: str, model_class: Model, field: str = "order_number") -> str:
    today = timezone.now()
    date_part = today.strftime("%Y%m%d")
    filter_kwargs = {f"{field}__startswith": f"{prefix}-{date_part}"}
    last = model_class.objects.filter(**filter_kwargs).order_by(f"-{field}").first()

    if last:
        last_num = getattr(last, field)
        try:
            seq = int(last_num.split("-")[-1]) + 1
        except ValueError:
            seq = 1
    else:
        seq = 1

    return f"{prefix}-{date_part}-{seq:04d}"


def create_with_number(model_class: Model, prefix: str, field: str,
                       attempts: int = 3, **fields) -> Model:
    """
    Create a row whose ``field`` gets the next daily sequence number.

    Two writers can read the same last number; the loser of the unique index
    draws again, and gives up with a ConflictError after ``attempts`` tries.
    """
    number = None
    for _ in range(attempts):
        number = generate_number(prefix, model_class, field)
        try:
            with transaction.atomic():
                return model_class.objects.create(**{field: number}, **fields)
        except IntegrityError:
            # only a taken number is worth another draw
            if not model_class.objects.filter(**{field: number}).exists():
                raise

    raise ConflictError(
        "Could not allocate a unique number, please retry",
        "NUMBER_CONFLICT",
        {"field": field, "last_tried": number}
    )


def derive_payment_status(total: Decimal, paid: Decimal) -> str:
    if total - paid <= 0:
        return "paid"
    if paid > 0:
        return "partial"
    return "due"


class BaseService:
    model = None

    @classmethod
    def get_by_id(cls, id: int) -> Optional[Model]:
        try:
            return cls.model.objects.get(id=id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            return None

    @classmethod
    def get_or_404(cls, id: int) -> Model:
        obj = cls.get_by_id(id)
        if not obj:
            raise NotFoundError(cls.model.__name__, id)
        return obj

    @classmethod
    def exists(cls, id: int) -> bool:
        return cls.model.objects.filter(id=id).exists()

    @classmethod
    def get_active(cls):
        if hasattr(cls.model, 'is_active'):
            return cls.model.objects.filter(is_active=True)
        return cls.model.objects.all()
