"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test
- Fake clock + TTL cache
- In-memory spreadsheet backend served through httpx.MockTransport
- CRM webhook receiver served through httpx.MockTransport
- ClientService wired to all of the above
"""
import json
import os
import re
from typing import Generator
from urllib.parse import unquote

import httpx
import pytest
from sqlalchemy.orm import Session, sessionmaker

# Point settings at throwaway backends before any app import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SHEETS_SPREADSHEET_ID"] = ""
os.environ["SHEETS_EXPORT_URL"] = ""
os.environ["CRM_WEBHOOK_URL"] = ""

from intake.core.cache import TTLCache
from intake.core.config import Settings
from intake.db.base import Base
from intake.db.session import build_engine
from intake.services import system_config_service
from intake.services.client_service import ClientService
from intake.services.crm_webhook_service import CrmWebhookClient
from intake.services.dispatch import BackgroundDispatcher
from intake.services.sheets_client import MIRROR_COLUMNS, SheetsClient


SHEET_HEADERS = [
    "FormEmailer Status",
    "Client ID",
    "Invoice Status",
    "Estimate Status",
    "Customer Status",
    "Responsable",
    "Timestamp",
    "Date",
    "Channel",
    "Service Type",
    "Client Full Name",
    "E-mail",
    "Address",
    "Correo",
    "Customer Phone Number",
    "Customer Type",
    "Technical Description",
    "Price",
    "Company Name",
    "Project Address",
    "Service Requested",
    "Urgency Level",
    "Preferred Contact Method",
    "Additional Notes",
    "Budget Range",
    "Expected Timeline",
    "Special Requirements",
]


def make_sheet_row(**values: str) -> list[str]:
    """27-column sheet row with the given mirror fields filled in."""
    return [values.get(name, "") for name in MIRROR_COLUMNS]


TEMPLATE_ROW = make_sheet_row(
    client_full_name="Sample Name",
    email="sample@example.com",
    status="New Lead",
)


# =============================================================================
# Time
# =============================================================================

class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(ttl_seconds=30.0, clock=clock)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Session on a private in-memory database with all tables created."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    system_config_service.seed_defaults(session)
    session.commit()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


# =============================================================================
# External backends
# =============================================================================

class FakeSheetBackend:
    """Spreadsheet held as a list of rows; row N of the sheet is rows[N-1]."""

    def __init__(self, tab_name: str = "Form Responses 1"):
        self.tab_name = tab_name
        self.rows: list[list[str]] = [list(SHEET_HEADERS), list(TEMPLATE_ROW)]
        self.fail_reads = False
        self.fail_writes = False
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def add_client_row(self, **values: str) -> int:
        """Append a data row and return its 1-based sheet row number."""
        self.rows.append(make_sheet_row(**values))
        return len(self.rows)

    def cell(self, row_number: int, field_name: str) -> str:
        return self.rows[row_number - 1][MIRROR_COLUMNS.index(field_name)]

    def row_for(self, client_id: str) -> int | None:
        column = MIRROR_COLUMNS.index("client_id")
        for position, row in enumerate(self.rows):
            if row[column] == client_id:
                return position + 1
        return None

    def to_csv(self) -> str:
        return "\n".join(",".join(f'"{value}"' for value in row) for row in self.rows) + "\n"

    @property
    def write_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = unquote(request.url.path)
        if request.method == "GET":
            if self.fail_reads:
                return httpx.Response(503, json={"error": {"message": "backend unavailable"}})
            return httpx.Response(200, text=self.to_csv())

        if self.fail_writes:
            return httpx.Response(503, json={"error": {"message": "backend unavailable"}})

        payload = json.loads(request.content or b"{}")
        if path.endswith(":append"):
            for row in payload["values"]:
                self.rows.append([str(v) for v in row])
            return httpx.Response(200, json={"updates": {"updatedRows": len(payload["values"])}})

        if path.endswith("values:batchUpdate"):
            updated = 0
            for item in payload["data"]:
                _, cell = item["range"].rsplit("!", 1)
                match = re.fullmatch(r"([A-Z]+)(\d+)", cell)
                letters, number = match.group(1), int(match.group(2))
                column = 0
                for char in letters:
                    column = column * 26 + (ord(char) - ord("A") + 1)
                row = self.rows[number - 1]
                while len(row) < column:
                    row.append("")
                row[column - 1] = item["values"][0][0]
                updated += 1
            return httpx.Response(200, json={"totalUpdatedCells": updated})

        return httpx.Response(404, json={"error": {"message": f"unknown path {path}"}})


class FakeCrmReceiver:
    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite://",
        SHEETS_SPREADSHEET_ID="sheet-123",
        SHEETS_ACCESS_TOKEN="test-token",
        SHEET_ROW_INDEX_ADJUSTMENT=0,
        CRM_WEBHOOK_URL="https://crm.example.com/hook",
        CRM_WEBHOOK_SECRET="s3cret",
        MIRROR_INVALIDATION_DELAY_SECONDS=0.01,
        OUTBOUND_TIMEOUT_SECONDS=2.0,
    )


@pytest.fixture
def sheet_backend() -> FakeSheetBackend:
    return FakeSheetBackend()


@pytest.fixture
def crm_receiver() -> FakeCrmReceiver:
    return FakeCrmReceiver()


@pytest.fixture
def sheets(test_settings: Settings, sheet_backend: FakeSheetBackend) -> SheetsClient:
    return SheetsClient(test_settings, transport=sheet_backend.transport)


@pytest.fixture
def crm(test_settings: Settings, crm_receiver: FakeCrmReceiver) -> CrmWebhookClient:
    return CrmWebhookClient(test_settings, transport=crm_receiver.transport)


@pytest.fixture
def service(
    db: Session,
    cache: TTLCache,
    sheets: SheetsClient,
    crm: CrmWebhookClient,
    test_settings: Settings,
) -> ClientService:
    return ClientService(
        db,
        cache=cache,
        sheets=sheets,
        crm=crm,
        dispatcher=BackgroundDispatcher(),
        config=test_settings,
    )


@pytest.fixture
def jane() -> dict:
    return {
        "client_full_name": "Jane Doe",
        "email": "jane@x.com",
        "service_type": "Repair",
        "project_address": "1 Main St",
    }
