from django.urls import path

from workflows import views

app_name = "workflows"

urlpatterns = [
    path("trigger/", views.trigger_workflow, name="trigger"),
    path("candidate-email/", views.candidate_email, name="candidate_email"),
]
