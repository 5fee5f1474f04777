# offers/api/views.py

"""
======================================================
PATH: offers/api/views.py
======================================================
REWARD / OFFER SETTINGS API

GET   /api/offers/settings/              normalized document (+ version)
PATCH /api/offers/settings/              partial config update (optimistic retry)
POST  /api/offers/settings/random-draw/  fresh random campaign draw

Security:
- GET needs offers.view
- PATCH / random-draw need offers.manage
======================================================
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from offers.api.serializers import (
    RandomDrawResultSerializer,
    RewardSettingsPatchSerializer,
    RewardSettingsSerializer,
)
from offers.models import SINGLETON_PK, CustomerRewardSettings
from offers.services.exceptions import OfferSettingsError
from offers.services.random_assignment import draw_random_offer_winners
from offers.services.settings_editor import apply_settings_patch
from offers.services.settings_repository import load_reward_settings
from permissions.roles import CAP_OFFERS_MANAGE, CAP_OFFERS_VIEW, HasCapability

logger = logging.getLogger(__name__)


def _current_version() -> int:
    return (
        CustomerRewardSettings.objects.filter(pk=SINGLETON_PK)
        .values_list("version", flat=True)
        .first()
        or 0
    )


def _settings_response(settings, *, status_code=status.HTTP_200_OK):
    data = RewardSettingsSerializer(settings, context={"version": _current_version()}).data
    return Response(data, status=status_code)


class RewardSettingsView(APIView):
    permission_classes = [IsAuthenticated, HasCapability]

    def get_required_capability(self):
        if self.request.method == "GET":
            return CAP_OFFERS_VIEW
        return CAP_OFFERS_MANAGE

    @extend_schema(tags=["offers"], responses={200: RewardSettingsSerializer})
    def get(self, request):
        return _settings_response(load_reward_settings())

    @extend_schema(
        tags=["offers"],
        request=RewardSettingsPatchSerializer,
        responses={200: RewardSettingsSerializer},
    )
    def patch(self, request):
        ser = RewardSettingsPatchSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        patch = dict(ser.validated_data)
        reselect = bool(patch.pop("reselect_random_customer_offer", False))

        try:
            settings = apply_settings_patch(patch, reselect_random=reselect)
        except OfferSettingsError as exc:
            logger.warning("Reward settings update failed", extra={"error": str(exc)})
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        return _settings_response(settings)


class RandomDrawView(APIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_OFFERS_MANAGE

    @extend_schema(tags=["offers"], request=None, responses={200: RandomDrawResultSerializer})
    def post(self, request):
        try:
            result = draw_random_offer_winners()
        except OfferSettingsError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        return Response(RandomDrawResultSerializer(result).data, status=status.HTTP_200_OK)
