"""Pytest configuration and fixtures for RoofCalc tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from roofcalc.config import reset_config
from roofcalc.db.models import Base
from roofcalc.models import (
    CalculationType,
    CatalogItem,
    MeasurementExtraction,
    MeasurementType,
    QuoteTemplate,
    TemplateMapping,
)
from roofcalc.web.dependencies import reset_rate_limiter


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("DEFAULT_ORG_ID", "test-org")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    reset_config()
    reset_rate_limiter()
    yield
    reset_config()
    reset_rate_limiter()


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture
def test_org_id() -> str:
    """Test organization ID."""
    return "test-org"


@pytest.fixture
def sample_template(test_org_id: str) -> QuoteTemplate:
    """Template with no waste and no labor markup."""
    return QuoteTemplate(
        org_id=test_org_id,
        name="Colorbond Re-Roof",
        waste_percent=0.0,
        labor_markup_percent=0.0,
    )


@pytest.fixture
def sample_extraction(test_org_id: str) -> MeasurementExtraction:
    """Measurement report for a typical hip roof."""
    return MeasurementExtraction(
        org_id=test_org_id,
        property_address="12 Example St, Brisbane",
        total_roof_area=100.0,
        pitched_roof_area=93.0,
        flat_roof_area=0.0,
        ridges=12.5,
        eaves=40.0,
        hips=18.0,
        valleys=None,
    )


@pytest.fixture
def ridge_product(test_org_id: str) -> CatalogItem:
    return CatalogItem(
        org_id=test_org_id,
        item_code="RC-100",
        description="Ridge Capping Colorbond",
        sell_price=100.0,
        cost_price=60.0,
        unit="lm",
    )


@pytest.fixture
def make_mapping():
    """Factory for a per-unit roof area mapping at $70 with no waste and no labor."""

    def _make(**overrides) -> TemplateMapping:
        values = {
            "template_id": uuid4(),
            "measurement_type": MeasurementType.ROOF_AREA,
            "calculation_type": CalculationType.PER_UNIT,
            "apply_waste": False,
            "product_description": "Roof sheeting",
            "unit_price": 70.0,
        }
        values.update(overrides)
        return TemplateMapping(**values)

    return _make
