from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import FormViewSet, PublicFormSchemaView, PublicFormSubmitView

router = DefaultRouter()
router.register(r"forms", FormViewSet, basename="form")

urlpatterns = [
    path("", include(router.urls)),
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path(
        "public/forms/<slug:slug>/",
        PublicFormSchemaView.as_view(),
        name="public-form-schema",
    ),
    path(
        "public/forms/<slug:slug>/submit/",
        PublicFormSubmitView.as_view(),
        name="public-form-submit",
    ),
]
