from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from core.helpers.response import APIResponse
from core.helpers.request import parse_json_body, get_actor, query_param, body_value, get_page_params
from core.helpers.require_login import user_required
from core.helpers.errors import handle_service_error
from .services import PerOrderService

CUSTOMER_FIELDS = ('name', 'phone', 'email', 'address')


def _customer_from_body(data):
    customer = data.get('customer')
    if isinstance(customer, dict):
        return customer
    return {
        field: body_value(data, f'customer_{field}', f'customer{field.capitalize()}')
        for field in CUSTOMER_FIELDS
    }


@csrf_exempt
@api_view(["GET", "POST"])
@user_required
def per_orders(request):
    if request.method == "POST":
        return create_per_order(request)

    page, per_page = get_page_params(request)
    try:
        result = PerOrderService.list(
            get_actor(request),
            branch_id=query_param(request, 'branchId', 'branch_id'),
            status=request.query_params.get('status'),
            search=request.query_params.get('search'),
            page=page,
            per_page=per_page,
        )
        return APIResponse.success(data={
            'per_orders': result['per_orders'],
            'pagination': result['pagination'],
        })
    except Exception as e:
        return handle_service_error(e)


def create_per_order(request):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = PerOrderService.create(
            get_actor(request),
            items=data.get('items'),
            customer=_customer_from_body(data),
            customer_id=body_value(data, 'customer_id', 'customerId'),
            advance_payment=body_value(data, 'advance_payment', 'advancePayment'),
            payment_method=body_value(data, 'payment_method', 'paymentMethod'),
            branch_id=body_value(data, 'branch_id', 'branchId'),
            expected_delivery_date=body_value(data, 'expected_delivery_date', 'expectedDeliveryDate'),
            notes=data.get('notes', ''),
        )
        return APIResponse.created(data=result['per_order'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET", "PATCH"])
@user_required
def per_order_detail(request, order_id):
    if request.method == "GET":
        try:
            result = PerOrderService.get(get_actor(request), order_id)
            return APIResponse.success(data=result['per_order'])
        except Exception as e:
            return handle_service_error(e)

    data, error = parse_json_body(request)
    if error:
        return error

    aliases = {
        'notes': 'notes',
        'expected_delivery_date': 'expected_delivery_date',
        'expectedDeliveryDate': 'expected_delivery_date',
        'advance_payment': 'advance_payment',
        'advancePayment': 'advance_payment',
        'items': 'items',
    }
    changes = {aliases[key]: value for key, value in data.items() if key in aliases}

    try:
        result = PerOrderService.update(
            get_actor(request),
            order_id,
            payment_method=body_value(data, 'payment_method', 'paymentMethod'),
            **changes
        )
        return APIResponse.success(data=result['per_order'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@user_required
def cancel_per_order(request, order_id):
    data, error = parse_json_body(request)
    if error:
        return error

    refund = data.get('refund', False)
    if isinstance(refund, str):
        refund = refund.lower() in ('1', 'true', 'yes')

    try:
        result = PerOrderService.cancel(
            get_actor(request),
            order_id,
            refund=bool(refund),
            reason=data.get('reason', ''),
        )
        return APIResponse.success(data=result['per_order'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@user_required
def convert_to_sale(request, order_id):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = PerOrderService.convert_to_sale(
            get_actor(request),
            order_id,
            remaining_payment=body_value(data, 'remainingPayment', 'remaining_payment'),
            payment_method=body_value(data, 'paymentMethod', 'payment_method'),
            items=data.get('items'),
        )
        return APIResponse.created(
            data={'per_order': result['per_order'], 'sale': result['sale']},
            message=result['message']
        )
    except Exception as e:
        return handle_service_error(e)
