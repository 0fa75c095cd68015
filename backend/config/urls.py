from django.urls import include, path

urlpatterns = [
    path("api/dependencies/", include("taskgraph.urls")),
]
