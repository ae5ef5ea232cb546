from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from core.helpers.response import APIResponse
from core.helpers.request import parse_json_body, get_actor, query_param, body_value, get_page_params
from core.helpers.require_login import user_required
from core.helpers.errors import handle_service_error
from .services import ProductService, StockLedgerService, ImeiRegistryService, StockTransferService


# ==================== STOCK ====================

@csrf_exempt
@api_view(["GET"])
@user_required
def list_stock(request):
    try:
        result = StockLedgerService.get_stock(
            get_actor(request),
            branch_id=query_param(request, 'branchId', 'branch_id'),
            search=request.query_params.get('search'),
        )
        return APIResponse.success(data=result['stock'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@user_required
def low_stock(request):
    try:
        result = StockLedgerService.get_low_stock(
            get_actor(request),
            branch_id=query_param(request, 'branchId', 'branch_id'),
        )
        return APIResponse.success(data=result['items'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@user_required
def stock_movements(request):
    try:
        result = StockLedgerService.movements(
            get_actor(request),
            product_id=query_param(request, 'productId', 'product_id'),
            branch_id=query_param(request, 'branchId', 'branch_id'),
        )
        return APIResponse.success(data=result['movements'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["PUT"])
@user_required
def set_stock_quantity(request):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = StockLedgerService.set_quantity(
            get_actor(request),
            product_id=body_value(data, 'productId', 'product_id'),
            branch_id=body_value(data, 'branchId', 'branch_id'),
            quantity=data.get('quantity'),
            min_stock_level=body_value(data, 'minStockLevel', 'min_stock_level'),
        )
        return APIResponse.success(data=result['stock'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


# ==================== PRODUCTS ====================

@csrf_exempt
@api_view(["GET", "POST"])
@user_required
def products(request):
    if request.method == "POST":
        return create_product(request)

    page, per_page = get_page_params(request)
    try:
        result = ProductService.list(
            page=page,
            per_page=per_page,
            search=request.query_params.get('search'),
            category=request.query_params.get('category'),
            brand=request.query_params.get('brand'),
            inventory_type=query_param(request, 'inventoryType', 'inventory_type'),
        )
        return APIResponse.success(data={
            'products': result['products'],
            'pagination': result['pagination'],
        })
    except Exception as e:
        return handle_service_error(e)


def create_product(request):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = ProductService.create(
            get_actor(request),
            sku=data.get('sku'),
            name=data.get('name'),
            base_price=body_value(data, 'basePrice', 'base_price'),
            brand=data.get('brand', ''),
            category=data.get('category', ''),
            inventory_type=body_value(data, 'inventoryType', 'inventory_type', default='bulk'),
        )
        return APIResponse.created(data=result['product'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@user_required
def get_product(request, product_id):
    try:
        result = ProductService.get(product_id)
        return APIResponse.success(data=result['product'])
    except Exception as e:
        return handle_service_error(e)


# ==================== BARCODE ====================

@csrf_exempt
@api_view(["GET"])
@user_required
def generate_barcode(request, product_id):
    try:
        result = ImeiRegistryService.generate_barcode(get_actor(request), product_id)
        return APIResponse.success(
            data={
                'productId': result['product_id'],
                'sku': result['sku'],
                'barcode': result['barcode'],
            },
            message=result['message']
        )
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET"])
@user_required
def validate_barcode(request, barcode):
    try:
        result = ProductService.get_by_barcode(barcode)
        return APIResponse.success(data=result['product'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


# ==================== IMEI ====================

@csrf_exempt
@api_view(["GET", "POST"])
@user_required
def imeis(request):
    if request.method == "POST":
        return add_imei(request)

    page, per_page = get_page_params(request, default_per_page=100)
    try:
        result = ImeiRegistryService.list(
            get_actor(request),
            product_id=query_param(request, 'productId', 'product_id'),
            branch_id=query_param(request, 'branchId', 'branch_id'),
            status=request.query_params.get('status', 'in_stock'),
            page=page,
            per_page=per_page,
        )
        return APIResponse.success(data=result['imeis'])
    except Exception as e:
        return handle_service_error(e)


def add_imei(request):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = ImeiRegistryService.add_unit(
            get_actor(request),
            product_id=body_value(data, 'productId', 'product_id'),
            imei=data.get('imei'),
            branch_id=body_value(data, 'branchId', 'branch_id'),
            purchase_price=body_value(data, 'purchasePrice', 'purchase_price'),
        )
        return APIResponse.created(data=result['imei'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


# ==================== TRANSFERS ====================

@csrf_exempt
@api_view(["GET", "POST"])
@user_required
def transfers(request):
    if request.method == "POST":
        return create_transfer(request)

    page, per_page = get_page_params(request)
    try:
        result = StockTransferService.list(
            get_actor(request),
            branch_id=query_param(request, 'branchId', 'branch_id'),
            page=page,
            per_page=per_page,
        )
        return APIResponse.success(data={
            'transfers': result['transfers'],
            'pagination': result['pagination'],
        })
    except Exception as e:
        return handle_service_error(e)


def create_transfer(request):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = StockTransferService.transfer(
            get_actor(request),
            from_branch_id=body_value(data, 'fromBranchId', 'from_branch_id'),
            to_branch_id=body_value(data, 'toBranchId', 'to_branch_id'),
            product_id=body_value(data, 'productId', 'product_id'),
            quantity=data.get('quantity'),
            notes=data.get('notes', ''),
        )
        return APIResponse.created(data=result['transfer'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)
