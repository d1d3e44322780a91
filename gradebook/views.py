import json
import logging
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.core.exceptions import ObjectDoesNotExist, PermissionDenied, ValidationError
from django.http import HttpResponse, JsonResponse

from . import services
from .exports import XLSX_CONTENT_TYPE, build_class_results_workbook
from .grading import InvalidConfiguration

logger = logging.getLogger(__name__)


def _error(message, status):
    return JsonResponse({'success': False, 'error': message}, status=status)


def _ok(data):
    return JsonResponse({'success': True, 'data': data})


def admin_required(view_func):
    """
    Resolve the caller's SchoolScope onto request.scope, or answer 403.
    Superusers and users linked to a school through SchoolAdmin pass.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            request.scope = services.scope_for_user(request.user)
        except PermissionDenied as e:
            return _error(str(e) or 'Unauthorized', 403)
        return view_func(request, *args, **kwargs)
    return wrapper


def api_view(methods=('GET',)):
    """
    Wrap a JSON endpoint: enforce the HTTP method and turn workflow
    exceptions into {'success': False, 'error': ...} responses.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if request.method not in methods:
                return _error('Method not allowed', 405)
            try:
                return view_func(request, *args, **kwargs)
            except ObjectDoesNotExist as e:
                return _error(str(e) or 'Not found', 404)
            except PermissionDenied as e:
                return _error(str(e) or 'Access denied', 403)
            except ValidationError as e:
                return _error('; '.join(e.messages), 400)
            except InvalidConfiguration as e:
                logger.error(f"Grading configuration error in {view_func.__name__}: {e}")
                return _error(str(e), 500)
        return login_required(admin_required(wrapper))
    return decorator


def _int_param(request, name, required=True):
    value = request.GET.get(name)
    if value in (None, ''):
        if required:
            raise ValidationError(f'{name} is required')
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer')


# ============ Reports ============

@api_view()
def student_report(request, student_id, term_id):
    return _ok(services.get_student_report_data(request.scope, student_id, term_id))


@api_view()
def class_statistics(request, class_term_id):
    return _ok(services.get_class_statistics(request.scope, class_term_id))


@api_view()
def class_results(request, class_term_id):
    return _ok(services.get_class_term_results(request.scope, class_term_id))


@api_view()
def class_results_export(request, class_term_id):
    """Broadsheet as an Excel download."""
    data = services.get_class_term_results(request.scope, class_term_id)
    wb = build_class_results_workbook(
        data['class_name'], data['term_name'], data['subjects'], data['results']
    )

    response = HttpResponse(content_type=XLSX_CONTENT_TYPE)
    filename = f"results_{data['class_name']}_{data['term_name']}.xlsx".replace(' ', '_')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    wb.save(response)
    return response


@api_view(methods=('POST',))
def publish_results(request, class_term_id):
    published, message = services.auto_publish_class_term_results(request.scope, class_term_id)
    if not published:
        return _error(message, 400)
    return _ok({'message': message})


# ============ Transitions ============

@api_view()
def transition_options(request):
    return _ok(services.get_transition_options(request.scope))


@api_view()
def transition_classes(request):
    return _ok(services.get_transition_classes(
        request.scope,
        _int_param(request, 'from_term_id'),
        _int_param(request, 'to_term_id'),
    ))


@api_view()
def transition_students(request, class_term_id):
    return _ok(services.get_students_for_transition(request.scope, class_term_id))


@api_view(methods=('POST',))
def execute_transitions(request):
    """
    Body: {"from_class_term_id", "to_class_term_id", "student_ids",
    "transition_type", "notes"}
    """
    try:
        payload = json.loads(request.body or b'{}')
    except ValueError:
        return _error('Invalid JSON body', 400)

    missing = [
        key for key in ('from_class_term_id', 'to_class_term_id', 'student_ids', 'transition_type')
        if key not in payload
    ]
    if missing:
        return _error(f"Missing fields: {', '.join(missing)}", 400)

    try:
        result = services.execute_student_transitions(
            request.scope,
            request.user,
            payload['from_class_term_id'],
            payload['to_class_term_id'],
            payload['student_ids'],
            payload['transition_type'],
            notes=payload.get('notes', ''),
        )
    except services.TransitionError as e:
        logger.error(f"Transition failed for {request.user}: {'; '.join(e.messages)}")
        raise
    return _ok(result)


@api_view()
def transition_history(request):
    return _ok(services.get_transition_history(
        request.scope,
        student_id=_int_param(request, 'student_id', required=False),
        class_term_id=_int_param(request, 'class_term_id', required=False),
    ))


@api_view()
def transition_statistics(request, term_id):
    return _ok(services.get_transition_statistics(request.scope, term_id))
