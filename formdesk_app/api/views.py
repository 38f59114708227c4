from typing import Any

from django.db.models import Count, Q
from django.http import HttpResponse
from rest_framework import permissions, serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from formdesk_app.forms.exceptions import NotFoundError, ValidationError, WindowClosedError
from formdesk_app.forms.fields import Violation
from formdesk_app.forms.models import Form, FormResponse
from formdesk_app.forms.permissions import can_edit_form, can_view_form
from formdesk_app.forms.services.export_service import ExportService
from formdesk_app.forms.services.insights import MAX_SAMPLE, ResponseInsightsService
from formdesk_app.forms.services.lifecycle import (
    archive_form,
    create_form,
    delete_form,
    delete_response,
    publish_form,
    unpublish_form,
    update_form,
)
from formdesk_app.forms.services.response_analytics import compute_form_analytics
from formdesk_app.forms.services.submission import submit_response
from formdesk_app.forms.services.submission_guard import check_availability


class FormSerializer(serializers.ModelSerializer):
    response_count = serializers.SerializerMethodField()

    class Meta:
        model = Form
        fields = [
            "id",
            "title",
            "description",
            "type",
            "slug",
            "fields",
            "settings",
            "submission_policy",
            "start_at",
            "end_at",
            "status",
            "published_at",
            "created_at",
            "updated_at",
            "response_count",
        ]
        read_only_fields = fields

    def get_response_count(self, obj: Form) -> int:
        annotated = getattr(obj, "response_count", None)
        if annotated is not None:
            return annotated
        return obj.responses.count()


class FormInputSerializer(serializers.Serializer):
    """Shape-only checks; the form rules themselves are applied by the services."""

    title = serializers.CharField(required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    type = serializers.CharField(required=False, allow_blank=True)
    fields = serializers.JSONField(required=False)
    settings = serializers.JSONField(required=False)
    submission_policy = serializers.JSONField(required=False)
    start_at = serializers.DateTimeField(required=False, allow_null=True)
    end_at = serializers.DateTimeField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=Form.Status.choices, required=False)

    def validate_settings(self, value):
        if value is not None and not isinstance(value, dict):
            raise serializers.ValidationError("settings must be an object")
        return value

    def validate_submission_policy(self, value):
        if value is not None and not isinstance(value, dict):
            raise serializers.ValidationError("submission_policy must be an object")
        return value


class FormResponseSerializer(serializers.ModelSerializer):
    class Meta:
        model = FormResponse
        fields = [
            "id",
            "responder",
            "started_at",
            "submitted_at",
            "duration_ms",
            "answers",
            "score",
            "max_score",
            "metadata",
        ]
        read_only_fields = fields


class IsFormOwner(permissions.BasePermission):
    """SAFE methods follow can_view_form, everything else can_edit_form."""

    message = "You do not have permission to manage this form."

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return can_view_form(request.user, obj)
        return can_edit_form(request.user, obj)


def _int_param(request, name: str, default: int, low: int, high: int) -> int:
    try:
        value = int(request.query_params.get(name, default))
    except (TypeError, ValueError):
        value = default
    return max(low, min(value, high))


def _submission_result(response: FormResponse) -> dict[str, Any]:
    metadata = response.metadata or {}
    return {
        "id": response.id,
        "score": response.score,
        "max_score": response.max_score,
        "per_question": metadata.get("per_question", []),
        "passed": metadata.get("passed"),
    }


class FormViewSet(viewsets.ModelViewSet):
    serializer_class = FormSerializer
    permission_classes = [permissions.IsAuthenticated, IsFormOwner]

    def get_queryset(self):
        return Form.objects.filter(owner=self.request.user).annotate(
            response_count=Count("responses")
        )

    def get_object(self):
        """Fetch object without scoping to queryset, then run object permissions.

        Non-owners get 403 rather than 404 for a form that exists.
        """
        lookup_url_kwarg = self.lookup_url_kwarg or self.lookup_field
        lookup_value = self.kwargs.get(lookup_url_kwarg)
        try:
            obj = Form.objects.get(**{self.lookup_field: lookup_value})
        except (Form.DoesNotExist, ValueError):
            raise NotFoundError(detail="Form not found.")
        self.check_object_permissions(self.request, obj)
        return obj

    def list(self, request, *args, **kwargs):
        qs = self.get_queryset()
        status_filter = request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        type_filter = request.query_params.get("type")
        if type_filter:
            qs = qs.filter(type=type_filter)
        q = (request.query_params.get("q") or "").strip()
        if q:
            qs = qs.filter(Q(title__icontains=q) | Q(description__icontains=q))

        limit = _int_param(request, "limit", 20, 1, 100)
        offset = _int_param(request, "offset", 0, 0, 10**9)
        total = qs.count()
        page = qs[offset : offset + limit]
        return Response(
            {
                "items": FormSerializer(page, many=True).data,
                "count": total,
                "limit": limit,
                "offset": offset,
            }
        )

    def create(self, request, *args, **kwargs):
        serializer = FormInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        form = create_form(request.user, serializer.validated_data)
        return Response(FormSerializer(form).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        kwargs.pop("partial", None)
        form = self.get_object()
        serializer = FormInputSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        form = update_form(form, serializer.validated_data)
        return Response(FormSerializer(form).data)

    def destroy(self, request, *args, **kwargs):
        form = self.get_object()
        mode = delete_form(form)
        return Response({"deleted": mode == "hard", "archived": mode == "soft"})

    @action(detail=True, methods=["post"])
    def publish(self, request, pk=None):
        form = publish_form(self.get_object())
        return Response(FormSerializer(form).data)

    @action(detail=True, methods=["post"])
    def unpublish(self, request, pk=None):
        form = unpublish_form(self.get_object())
        return Response(FormSerializer(form).data)

    @action(detail=True, methods=["post"])
    def archive(self, request, pk=None):
        form = archive_form(self.get_object())
        return Response(FormSerializer(form).data)

    @action(detail=True, methods=["get"])
    def analytics(self, request, pk=None):
        """Totals, the daily series for ``?days=`` and option distributions."""
        form = self.get_object()
        days = _int_param(request, "days", 30, 1, 365)
        return Response(compute_form_analytics(form, days=days).as_dict())

    @action(detail=True, methods=["get"])
    def responses(self, request, pk=None):
        """Paginated responses, or the full set as CSV with ``?export=csv``."""
        form = self.get_object()
        qs = form.responses.order_by("-submitted_at", "-id")

        if request.query_params.get("export") == "csv":
            content = ExportService.generate_csv(form, qs)
            resp = HttpResponse(content, content_type="text/csv; charset=utf-8")
            resp["Content-Disposition"] = f'attachment; filename="{form.slug}-responses.csv"'
            return resp

        limit = _int_param(request, "limit", 50, 1, 500)
        offset = _int_param(request, "offset", 0, 0, 10**9)
        total = qs.count()
        page = qs[offset : offset + limit]
        return Response(
            {
                "items": FormResponseSerializer(page, many=True).data,
                "count": total,
                "limit": limit,
                "offset": offset,
            }
        )

    @action(
        detail=True,
        methods=["delete"],
        url_path=r"responses/(?P<response_id>\d+)",
    )
    def destroy_response(self, request, pk=None, response_id=None):
        form = self.get_object()
        delete_response(form, int(response_id))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def insights(self, request, pk=None):
        form = self.get_object()
        service = ResponseInsightsService()
        if not service.is_available:
            return Response(
                {"error": "AI insights are not configured"},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        sample = list(form.responses.order_by("-submitted_at")[:MAX_SAMPLE])
        text, error = service.summarize(form, sample)
        if error:
            return Response({"error": error}, status=status.HTTP_502_BAD_GATEWAY)
        return Response({"insights": text, "sample_size": len(sample)})


def _get_form_by_slug(slug: str) -> Form:
    form = Form.objects.filter(slug=slug).first()
    if form is None:
        raise NotFoundError(detail="Form not found.")
    return form


class PublicFormSchemaView(APIView):
    """Anonymous read of a form's public schema while it accepts responses."""

    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def get(self, request, slug):
        form = _get_form_by_slug(slug)
        availability = check_availability(form)
        if not availability.allowed:
            raise WindowClosedError(detail=availability.messages[0])
        return Response(form.public_schema())


class PublicFormSubmitView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request, slug):
        form = _get_form_by_slug(slug)
        payload = request.data
        if not isinstance(payload, dict):
            raise ValidationError(
                [Violation(None, "payload", "Submission must be a JSON object")]
            )
        forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        else:
            ip = request.META.get("REMOTE_ADDR", "")
        response = submit_response(
            form,
            payload,
            ip=ip,
            user_agent=request.META.get("HTTP_USER_AGENT", ""),
        )
        return Response(_submission_result(response), status=status.HTTP_201_CREATED)
