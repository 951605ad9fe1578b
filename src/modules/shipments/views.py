"""Shipment API views.

Exposes ``ShipmentLifecycleService`` and ``ShipmentQueryService`` via
HTTP using DRF ViewSets.  Domain exceptions are caught and translated into
HTTP status codes (not found → 404, conflicts and rejected transitions →
409); the view never swallows generic exceptions.
"""

from __future__ import annotations

from typing import Any, Callable

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.shipments.constants import SYSTEM_AUTHOR, AuthorRole
from modules.shipments.dtos import ActorDTO, CreateShipmentDTO
from modules.shipments.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    TerminalStateError,
)
from modules.shipments.filters import DeliveryPartnerFilter
from modules.shipments.models import DeliveryPartner, Shipment
from modules.shipments.queries import ShipmentQueryService
from modules.shipments.repositories.django_repository import (
    DeliveryPartnerDjangoRepository,
    ShipmentDjangoRepository,
    TrackingEventDjangoLog,
)
from modules.shipments.serializers import (
    ChangeStatusSerializer,
    CreateShipmentSerializer,
    DeliveryPartnerSerializer,
    ReassignCourierSerializer,
    ReassignTrackingNumberSerializer,
    RecordLocationSerializer,
    ShipmentListSerializer,
    ShipmentSearchSerializer,
    ShipmentSerializer,
    ShipmentSummarySerializer,
    TrackingEventSerializer,
)
from modules.shipments.services import ShipmentLifecycleService, ShipmentMutation

MUTATING_ACTIONS = {
    "create",
    "change_status",
    "reassign_courier",
    "reassign_tracking_number",
    "record_location",
}


def _actor(request: Request, data: dict) -> ActorDTO:
    """Author of a mutation: explicit payload fields, else the caller."""
    name = data.get("author") or request.user.get_username() or SYSTEM_AUTHOR
    role = data.get("author_role") or AuthorRole.SELLER
    return ActorDTO(name=name, role=role)


def _mutation_response(mutation: ShipmentMutation) -> Response:
    body = ShipmentSerializer(mutation.shipment).data
    return Response(
        {
            "shipment": body,
            "event": (
                TrackingEventSerializer(mutation.event).data
                if mutation.event is not None
                else None
            ),
        }
    )


def _run_mutation(operation: Callable[[], ShipmentMutation]) -> Response:
    """Execute a lifecycle mutation and map domain errors to HTTP."""
    try:
        mutation = operation()
    except NotFoundError as exc:
        return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
    except InvalidTransitionError as exc:
        return Response(
            {"detail": str(exc), "reason": exc.reason},
            status=status.HTTP_409_CONFLICT,
        )
    except (TerminalStateError, ConflictError) as exc:
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
    except ValueError as exc:
        return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    return _mutation_response(mutation)


class ShipmentViewSet(GenericViewSet):
    """ViewSet for Shipment operations.

    Uses ``ShipmentLifecycleService`` for every write and
    ``ShipmentQueryService`` for listings.  Does **not** extend
    ``ModelViewSet``: there is no generic update or delete.
    """

    queryset = Shipment.objects.all()
    serializer_class = ShipmentSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        shipment_repository = ShipmentDjangoRepository()
        partner_repository = DeliveryPartnerDjangoRepository()
        self._service = ShipmentLifecycleService(
            shipment_repository=shipment_repository,
            event_log=TrackingEventDjangoLog(),
            partner_repository=partner_repository,
        )
        self._queries = ShipmentQueryService(
            shipment_repository=shipment_repository,
            partner_repository=partner_repository,
        )

    def get_throttles(self) -> list[BaseThrottle]:
        """Escopos de throttling por ação: escrita e leitura."""
        if self.action in MUTATING_ACTIONS:
            self.throttle_scope = "shipment_mutation"
        elif self.action is not None:
            self.throttle_scope = "shipment_listing"
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/shipments/"""
        create_serializer = CreateShipmentSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)
        dto = CreateShipmentDTO(**create_serializer.validated_data)

        try:
            shipment = self._service.create_shipment(dto)
        except NotFoundError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except ConflictError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        out = ShipmentSerializer(shipment)
        return Response(out.data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/shipments/?status=&courier=&partner=&q="""
        params = ShipmentSearchSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        filters = params.validated_data

        queryset = self._queries.search(
            status=filters.get("status"),
            courier=filters.get("courier"),
            query=filters.get("q"),
            partner_id=filters.get("partner"),
        )

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = ShipmentListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/shipments/{pk}/"""
        try:
            shipment = self._service.get_shipment(pk)
        except NotFoundError:
            return Response(
                {"detail": "Shipment not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        serializer = ShipmentSerializer(shipment)
        return Response(serializer.data)

    @action(detail=True, methods=["get"])
    def events(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/shipments/{pk}/events/ (oldest first)."""
        try:
            events = self._service.list_events(pk)
        except NotFoundError:
            return Response(
                {"detail": "Shipment not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(TrackingEventSerializer(events, many=True).data)

    @action(detail=False, methods=["get"], url_path=r"by-order/(?P<order_id>[^/]+)")
    def by_order(self, request: Request, order_id: str) -> Response:
        """GET /api/v1/shipments/by-order/{order_id}/"""
        try:
            shipment = self._service.get_shipment_by_order(order_id)
        except NotFoundError:
            return Response(
                {"detail": "Shipment not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(ShipmentSerializer(shipment).data)

    @action(detail=False, methods=["get"])
    def summary(self, request: Request) -> Response:
        """GET /api/v1/shipments/summary/"""
        summary = self._queries.summary()
        return Response(ShipmentSummarySerializer(summary.model_dump()).data)

    @action(detail=False, methods=["get"])
    def couriers(self, request: Request) -> Response:
        """GET /api/v1/shipments/couriers/"""
        return Response(self._queries.couriers())

    # ------------------------------------------------------------------
    # Lifecycle mutations
    # ------------------------------------------------------------------

    def _validated(self, serializer_class: Any, request: Request) -> dict:
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    @action(detail=True, methods=["patch"], url_path="status")
    def change_status(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/shipments/{pk}/status/

        409 responses for rejected transitions carry ``reason``
        (``identity transition``, ``terminal state`` or ``no such edge``).
        """
        data = self._validated(ChangeStatusSerializer, request)
        return _run_mutation(
            lambda: self._service.change_status(
                pk,
                data["status"],
                remarks=data["remarks"],
                actor=_actor(request, data),
            )
        )

    @action(detail=True, methods=["patch"], url_path="courier")
    def reassign_courier(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/shipments/{pk}/courier/"""
        data = self._validated(ReassignCourierSerializer, request)
        return _run_mutation(
            lambda: self._service.reassign_courier(
                pk, data["partner_id"], actor=_actor(request, data)
            )
        )

    @action(detail=True, methods=["patch"], url_path="tracking-number")
    def reassign_tracking_number(
        self, request: Request, pk: str | None = None
    ) -> Response:
        """PATCH /api/v1/shipments/{pk}/tracking-number/"""
        data = self._validated(ReassignTrackingNumberSerializer, request)
        return _run_mutation(
            lambda: self._service.reassign_tracking_number(
                pk, data["tracking_number"], actor=_actor(request, data)
            )
        )

    @action(detail=True, methods=["post"], url_path="location")
    def record_location(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/shipments/{pk}/location/"""
        data = self._validated(RecordLocationSerializer, request)
        return _run_mutation(
            lambda: self._service.record_location(
                pk,
                data["location"],
                remarks=data["remarks"],
                actor=_actor(request, data),
            )
        )


class DeliveryPartnerViewSet(GenericViewSet):
    """Read-only listing of delivery partners."""

    queryset = DeliveryPartner.objects.all()
    serializer_class = DeliveryPartnerSerializer
    filterset_class = DeliveryPartnerFilter
    filter_backends = [DjangoFilterBackend]
    throttle_scope = "shipment_listing"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._repository = DeliveryPartnerDjangoRepository()
        self._queries = ShipmentQueryService(
            shipment_repository=ShipmentDjangoRepository(),
            partner_repository=self._repository,
        )

    def get_queryset(self):
        return self._queries.list_partners()

    def list(self, request: Request) -> Response:
        """GET /api/v1/delivery-partners/?availability=&provider=&vehicle_type="""
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = DeliveryPartnerSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/delivery-partners/{pk}/"""
        partner = self._repository.get_by_id(pk)
        if partner is None:
            return Response(
                {"detail": "Delivery partner not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(DeliveryPartnerSerializer(partner).data)
