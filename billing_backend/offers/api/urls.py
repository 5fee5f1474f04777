# offers/api/urls.py

from django.urls import path

from offers.api.views import RandomDrawView, RewardSettingsView

urlpatterns = [
    path("settings/", RewardSettingsView.as_view(), name="offers-settings"),
    path("settings/random-draw/", RandomDrawView.as_view(), name="offers-random-draw"),
]
