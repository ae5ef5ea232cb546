from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from core.helpers.response import APIResponse
from core.helpers.request import parse_json_body, get_actor, query_param, body_value, get_page_params
from core.helpers.require_login import user_required
from core.helpers.errors import handle_service_error
from .services import SaleService


@csrf_exempt
@api_view(["GET", "POST"])
@user_required
def sales(request):
    if request.method == "POST":
        return create_sale(request)

    page, per_page = get_page_params(request)
    try:
        result = SaleService.list_sales(
            get_actor(request),
            branch_id=query_param(request, 'branchId', 'branch_id'),
            payment_status=query_param(request, 'paymentStatus', 'payment_status'),
            status=request.query_params.get('status'),
            date_from=query_param(request, 'dateFrom', 'date_from'),
            date_to=query_param(request, 'dateTo', 'date_to'),
            search=request.query_params.get('search'),
            page=page,
            per_page=per_page,
        )
        return APIResponse.success(data={
            'sales': result['sales'],
            'pagination': result['pagination'],
        })
    except Exception as e:
        return handle_service_error(e)


def create_sale(request):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = SaleService.create_sale(
            get_actor(request),
            items=data.get('items'),
            discount_amount=body_value(data, 'discountAmount', 'discount_amount'),
            tax_rate=body_value(data, 'taxRate', 'tax_rate'),
            paid_amount=body_value(data, 'paidAmount', 'paid_amount'),
            payment_method=body_value(data, 'paymentMethod', 'payment_method'),
            customer_id=body_value(data, 'customerId', 'customer_id'),
            notes=data.get('notes', ''),
            branch_id=body_value(data, 'branchId', 'branch_id'),
        )
        return APIResponse.created(data=result['sale'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@user_required
def get_sale(request, sale_ref):
    try:
        result = SaleService.get_sale(get_actor(request), sale_ref)
        return APIResponse.success(data=result['sale'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@user_required
def add_payment(request, sale_id):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = SaleService.add_payment(
            get_actor(request),
            sale_id,
            amount=data.get('amount'),
            payment_method=body_value(data, 'paymentMethod', 'payment_method'),
            reference=data.get('reference', ''),
        )
        return APIResponse.created(data=result['sale'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@user_required
def cancel_sale(request, sale_id):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = SaleService.cancel_sale(get_actor(request), sale_id, reason=data.get('reason', ''))
        return APIResponse.success(data=result['sale'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@user_required
def create_refund(request, sale_id):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = SaleService.create_refund(
            get_actor(request),
            sale_id,
            amount=data.get('amount'),
            reason=data.get('reason', ''),
        )
        return APIResponse.created(data=result['refund'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["PUT"])
@user_required
def process_refund(request, refund_id):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = SaleService.process_refund(get_actor(request), refund_id, action=data.get('action'))
        return APIResponse.success(
            data={'refund': result['refund'], 'sale': result['sale']},
            message=result['message']
        )
    except Exception as e:
        return handle_service_error(e)
