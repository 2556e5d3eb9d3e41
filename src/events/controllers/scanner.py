from django.db.models import QuerySet
from ninja import Query
from ninja_extra import api_controller, route

from accounts.service.identity import require_scanner
from common.authentication import IdentityJWTAuth
from common.controllers import IdentityAwareController
from common.schema import ErrorResponse
from common.throttling import ScanThrottle
from events import models, schema
from events.service.scan_service import ScanResult, TicketScanner, get_scan_history


@api_controller("/scanner", auth=IdentityJWTAuth(), tags=["Scanner"], throttle=ScanThrottle())
class ScannerController(IdentityAwareController):
    @route.post("/scan", url_name="scan_ticket", response={200: schema.ScanResultSchema, 403: ErrorResponse})
    def scan_ticket(self, payload: schema.ScanRequestSchema) -> ScanResult:
        """Redeem a ticket at the door.

        Accepts the raw QR code content, a ticket number or a ticket id. Rejected scans are
        still answered with 200 and `outcome: error` plus a machine-readable `reason`;
        a ticket that was already redeemed answers `outcome: already_used` with who scanned
        it and when. Only callers without a scanning role get a 403.
        """
        identity = self.identity()
        require_scanner(identity)
        return TicketScanner(identity).scan(payload.raw_code, event_id=payload.event_id)

    @route.get(
        "/history",
        url_name="scan_history",
        response={200: list[schema.ScannedTicketSchema], 403: ErrorResponse},
    )
    def scan_history(
        self,
        filters: schema.ScanHistoryFilterSchema = Query(...),  # type: ignore[type-arg]
    ) -> QuerySet[models.Ticket]:
        """Tickets the caller redeemed, newest first."""
        return get_scan_history(
            self.identity(),
            limit=filters.limit,
            start=filters.start,
            end=filters.end,
            event_id=filters.event_id,
            scanner_id=filters.scanner_id,
        )
