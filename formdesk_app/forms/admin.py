from django.contrib import admin

from .models import Form, FormResponse


@admin.register(Form)
class FormAdmin(admin.ModelAdmin):
    list_display = ("title", "slug", "type", "status", "owner", "published_at", "updated_at")
    list_filter = ("type", "status", "created_at")
    search_fields = ("title", "slug", "description", "owner__username")
    readonly_fields = ("slug", "published_at", "created_at", "updated_at")


@admin.register(FormResponse)
class FormResponseAdmin(admin.ModelAdmin):
    list_display = ("form", "submitted_at", "score", "max_score", "dedupe_email")
    list_filter = ("submitted_at",)
    search_fields = ("form__title", "form__slug", "dedupe_email", "dedupe_student_id")
    readonly_fields = ("submitted_at",)
