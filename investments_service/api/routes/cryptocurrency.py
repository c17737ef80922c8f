"""Cryptocurrency market endpoints: paged catalog and intraday price series."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...schemas import CryptoDailyPriceSchema, CryptocurrencyPageSchema, CryptocurrencySchema
from ...services.catalog import get_cryptocurrency, list_daily_prices, page_cryptocurrencies
from ...services.ledger import CryptoAsset, ensure_aware, normalize_crypto_id, unknown_asset
from ...services.results import LedgerOperationError
from ..dependencies import InternalAuth, get_db_session

router = APIRouter(dependencies=[InternalAuth])


def _optional_float(value) -> float | None:
    return None if value is None else float(value)


def _serialize_asset(asset: CryptoAsset) -> CryptocurrencySchema:
    return CryptocurrencySchema(
        id=asset.id,
        symbol=asset.symbol,
        name=asset.name,
        current_price=float(asset.current_price),
        last_updated=asset.last_updated,
        price_change_24h=_optional_float(asset.price_change_24h),
        price_change_percentage_24h=_optional_float(asset.price_change_percentage_24h),
        image=asset.image,
    )


@router.get("/getlist", response_model=CryptocurrencyPageSchema)
async def get_list(
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=250),
    session: AsyncSession = Depends(get_db_session),
) -> CryptocurrencyPageSchema:
    catalog_page = await page_cryptocurrencies(session, page, size)
    return CryptocurrencyPageSchema(
        content=[_serialize_asset(asset) for asset in catalog_page.items],
        number=catalog_page.number,
        size=catalog_page.size,
        total_pages=catalog_page.total_pages,
        total_elements=catalog_page.total_elements,
        number_of_elements=len(catalog_page.items),
        first=catalog_page.first,
        last=catalog_page.last,
        empty=not catalog_page.items,
    )


@router.get("/dailyprice", response_model=list[CryptoDailyPriceSchema])
async def get_daily_price(
    crypto_id: str = Query(..., alias="cryptoId", min_length=1),
    session: AsyncSession = Depends(get_db_session),
) -> list[CryptoDailyPriceSchema]:
    record = await get_cryptocurrency(session, crypto_id)
    if record is None:
        raise LedgerOperationError(unknown_asset(normalize_crypto_id(crypto_id)).error)
    points = await list_daily_prices(session, record.id)
    return [
        CryptoDailyPriceSchema(price=float(point.price), date_time=ensure_aware(point.recorded_at))
        for point in points
    ]


__all__ = ["router"]
