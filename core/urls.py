from django.urls import path

from .views import branch_views

urlpatterns = [
    path('branches', branch_views.branches, name='branches'),
    path('branches/<int:branch_id>', branch_views.branch_detail, name='branch-detail'),
    path('branches/<int:branch_id>/deactivate', branch_views.deactivate_branch, name='branch-deactivate'),
]
