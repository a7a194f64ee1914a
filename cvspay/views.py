from .middleware import error_response


def error_404_view(request, exception):
    return error_response("NOT_FOUND", f"No route for {request.path}", 404)


def error_500_view(request):
    return error_response("INTERNAL_ERROR", "Internal server error", 500)
