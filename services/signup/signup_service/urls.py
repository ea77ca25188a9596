"""URL configuration for the signup form service."""
from django.urls import include, path

urlpatterns = [
    path("api/", include("signup_forms.urls")),
]
