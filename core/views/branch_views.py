from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from ..services.branch_service import BranchService
from core.helpers.response import APIResponse
from core.helpers.request import parse_json_body, get_actor
from core.helpers.require_login import user_required
from core.helpers.errors import handle_service_error


@csrf_exempt
@api_view(["GET", "POST"])
@user_required
def branches(request):
    if request.method == "POST":
        return create_branch(request)

    try:
        include_inactive = request.query_params.get('include_inactive', 'false').lower() == 'true'
        result = BranchService.list(get_actor(request), include_inactive=include_inactive)
        return APIResponse.success(data=result['branches'])
    except Exception as e:
        return handle_service_error(e)


def create_branch(request):
    data, error = parse_json_body(request)
    if error:
        return error

    try:
        result = BranchService.create(
            get_actor(request),
            name=data.get('name'),
            code=data.get('code'),
            address=data.get('address', ''),
            phone=data.get('phone', ''),
        )
        return APIResponse.created(data=result['branch'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["GET", "PUT", "PATCH"])
@user_required
def branch_detail(request, branch_id):
    if request.method == "GET":
        try:
            result = BranchService.get(get_actor(request), branch_id)
            return APIResponse.success(data=result['branch'])
        except Exception as e:
            return handle_service_error(e)

    data, error = parse_json_body(request)
    if error:
        return error

    allowed = ('name', 'code', 'address', 'phone', 'is_active')
    try:
        result = BranchService.update(
            get_actor(request),
            branch_id,
            **{k: v for k, v in data.items() if k in allowed}
        )
        return APIResponse.success(data=result['branch'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)


@csrf_exempt
@api_view(["POST"])
@user_required
def deactivate_branch(request, branch_id):
    try:
        result = BranchService.deactivate(get_actor(request), branch_id)
        return APIResponse.success(data=result['branch'], message=result['message'])
    except Exception as e:
        return handle_service_error(e)
