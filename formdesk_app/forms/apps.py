from django.apps import AppConfig


class FormsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "formdesk_app.forms"
    label = "forms"
    verbose_name = "Forms"
