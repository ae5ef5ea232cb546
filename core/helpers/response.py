from rest_framework import status
from rest_framework.response import Response


class APIResponse:

    @staticmethod
    def success(data=None, message="Success", status_code=status.HTTP_200_OK):
        return Response(
            {"success": True, "message": message, "data": data},
            status=status_code
        )

    @staticmethod
    def created(data=None, message="Created successfully"):
        return APIResponse.success(data=data, message=message, status_code=status.HTTP_201_CREATED)

    @staticmethod
    def error(message="Something went wrong", error_code="ERROR", details=None,
              status_code=status.HTTP_400_BAD_REQUEST):
        return Response(
            {
                "success": False,
                "message": message,
                "error_code": error_code,
                "details": details or {},
            },
            status=status_code
        )

    @staticmethod
    def validation_error(errors=None, message="Validation failed"):
        return APIResponse.error(
            message=message,
            error_code="VALIDATION_ERROR",
            details=errors,
            status_code=status.HTTP_400_BAD_REQUEST
        )

    @staticmethod
    def unauthorized(message="Authentication required"):
        return APIResponse.error(
            message=message,
            error_code="UNAUTHORIZED",
            status_code=status.HTTP_401_UNAUTHORIZED
        )

    @staticmethod
    def forbidden(message="Access denied", details=None):
        return APIResponse.error(
            message=message,
            error_code="FORBIDDEN",
            details=details,
            status_code=status.HTTP_403_FORBIDDEN
        )

    @staticmethod
    def not_found(message="Not found", details=None):
        return APIResponse.error(
            message=message,
            error_code="NOT_FOUND",
            details=details,
            status_code=status.HTTP_404_NOT_FOUND
        )

    @staticmethod
    def conflict(message="Conflict", error_code="CONFLICT", details=None):
        return APIResponse.error(
            message=message,
            error_code=error_code,
            details=details,
            status_code=status.HTTP_409_CONFLICT
        )
