from django.urls import path

from prescreening import views

app_name = "prescreening"

urlpatterns = [
    path("", views.pre_screen_list, name="list"),
    path("<uuid:candidate_id>/", views.run_pre_screening, name="run"),
]
