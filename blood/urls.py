from django.urls import path
from . import views

urlpatterns = [
    path('compatibility/<str:blood_type>/', views.compatibility_view, name='blood_compatibility'),
    path('donors/search/', views.donor_search_view, name='donor_search'),
    path('emergency/', views.emergency_request_view, name='emergency_request'),
    path('drives/', views.blood_drives_view, name='blood_drives'),
    path('emergency/<str:request_id>/matches/', views.match_summary_view, name='emergency_matches'),
    path('matches/', views.my_matches_view, name='my_matches'),
    path('matches/<int:match_id>/respond/', views.match_response_view, name='match_respond'),
]
