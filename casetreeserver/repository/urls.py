from django.urls import path

from casetreeserver.repository import views

app_name = "repository"

urlpatterns = [
    path("test-repo/", views.repository_tree, name="tree"),
    path("test-repo/reorder/", views.reorder_repository, name="reorder"),
    path("test-suites/", views.create_suite, name="create-suite"),
    path("test-suites/<str:suite_id>/", views.suite_detail, name="suite-detail"),
    path("sections/", views.create_section, name="create-section"),
    path("sections/<str:section_id>/", views.section_detail, name="section-detail"),
    path("test-cases/", views.create_case, name="create-case"),
    path("test-cases/<str:case_id>/", views.case_detail, name="case-detail"),
]
