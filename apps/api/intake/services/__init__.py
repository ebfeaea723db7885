"""Service layer modules."""

from intake.services.client_service import ClientService, generate_client_id
from intake.services.crm_webhook_service import CrmWebhookClient, build_contact_payload
from intake.services.dispatch import BackgroundDispatcher
from intake.services.sheet_reconciler import ingest_export, reconcile_rows
from intake.services.sheet_view_service import SheetViewService
from intake.services.sheets_client import SheetsClient
from intake.services.sync_service import SyncService
from intake.services.tabular_parser import parse_tabular_text
