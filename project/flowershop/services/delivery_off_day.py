# flowershop/services/delivery_off_day.py

"""
Дни без доставки. На одну дату допускается только одна активная запись;
неактивные дубликаты остаются от старых правок и чистятся через cleanup.
"""

import re
from collections import defaultdict

from fastapi import HTTPException, Request
from sqlalchemy import delete
from sqlalchemy.future import select

from flowershop.models.delivery_off_day import DeliveryOffDay as OffDayModel
from flowershop.schemas.delivery_off_day import OffDayCreate, OffDayUpdate
from flowershop.services.automation import istanbul_date_key
from flowershop.utils.database import utcnow
from flowershop.utils.db_service import get_or_404, to_api

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
INVALID_DATE = "Geçersiz tarih formatı"
DUPLICATE_DATE = "Bu tarih için zaten bir off günü kaydı mevcut"
NOT_FOUND = "Off günü bulunamadı"


async def _active_for_date(db, off_date: str, exclude_id: int | None = None) -> OffDayModel | None:
    query = (
        select(OffDayModel)
        .where(OffDayModel.off_date == off_date)
        .where(OffDayModel.is_active.is_(True))
    )
    if exclude_id is not None:
        query = query.where(OffDayModel.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def is_delivery_off_day(db, off_date: str) -> bool:
    return await _active_for_date(db, off_date) is not None


async def read_off_days_service(request: Request, include_inactive: bool = False, include_past: bool = False) -> dict:
    """
    По умолчанию: активные дни начиная с сегодняшнего (Стамбул).
    include_inactive=True добавляет неактивные, include_past=True: прошедшие.
    """
    db = request.state.db

    query = select(OffDayModel)
    if not include_inactive:
        query = query.where(OffDayModel.is_active.is_(True))
    if not include_past:
        query = query.where(OffDayModel.off_date >= istanbul_date_key(utcnow()))

    result = await db.execute(query.order_by(OffDayModel.off_date))
    off_days = [to_api(d) for d in result.scalars().all()]
    return {"offDays": off_days, "total": len(off_days)}


async def create_off_day_service(data: OffDayCreate, request: Request) -> dict:
    db = request.state.db
    log = request.app.state.log

    off_date = (data.off_date or "").strip()
    if not DATE_RE.match(off_date):
        raise HTTPException(status_code=400, detail=INVALID_DATE)

    if await _active_for_date(db, off_date) is not None:
        await log.log_warning("off_day", "Дата уже закрыта", {"off_date": off_date})
        raise HTTPException(status_code=409, detail=DUPLICATE_DATE)

    # старые неактивные записи на эту дату больше не нужны
    await db.execute(
        delete(OffDayModel)
        .where(OffDayModel.off_date == off_date)
        .where(OffDayModel.is_active.is_(False))
    )

    off_day = OffDayModel(off_date=off_date, note=(data.note or "").strip(), is_active=True)
    db.add(off_day)
    await db.commit()
    await db.refresh(off_day)

    await log.log_info("off_day", "День без доставки добавлен", {"id": off_day.id, "off_date": off_date})
    return {"success": True, "data": to_api(off_day)}


async def update_off_day_service(id: int, data: OffDayUpdate, request: Request) -> dict:
    db = request.state.db
    log = request.app.state.log

    off_day = await get_or_404(request, OffDayModel, id, "off_day", NOT_FOUND)
    changes = data.model_dump(exclude_unset=True)

    if "off_date" in changes:
        changes["off_date"] = (changes["off_date"] or "").strip()
        if not DATE_RE.match(changes["off_date"]):
            raise HTTPException(status_code=400, detail=INVALID_DATE)

    off_date = changes.get("off_date", off_day.off_date)
    is_active = changes.get("is_active", off_day.is_active)
    if is_active and await _active_for_date(db, off_date, exclude_id=id) is not None:
        raise HTTPException(status_code=409, detail=DUPLICATE_DATE)

    for key, value in changes.items():
        setattr(off_day, key, value)
    off_day.updated_at = utcnow()
    await db.commit()
    await db.refresh(off_day)

    await log.log_info("off_day", "День без доставки обновлён", {"id": id})
    return {"success": True, "data": to_api(off_day)}


async def delete_off_day_service(id: int, request: Request) -> dict:
    db = request.state.db
    log = request.app.state.log

    off_day = await get_or_404(request, OffDayModel, id, "off_day", NOT_FOUND)
    await db.delete(off_day)
    await db.commit()

    await log.log_info("off_day", "День без доставки удалён", {"id": id})
    return {"success": True}


async def cleanup_off_days_service(request: Request) -> dict:
    """
    Оставляет по одной записи на дату: активную, если есть, иначе самую свежую.
    """
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(select(OffDayModel).order_by(OffDayModel.off_date, OffDayModel.id))
    records = result.scalars().all()

    by_date = defaultdict(list)
    for record in records:
        by_date[record.off_date].append(record)

    duplicate_dates = 0
    deleted = 0
    for group in by_date.values():
        if len(group) < 2:
            continue
        duplicate_dates += 1
        keep = next((r for r in group if r.is_active), group[-1])
        for record in group:
            if record is not keep:
                await db.delete(record)
                deleted += 1

    await db.commit()

    stats = {"totalRecords": len(records), "duplicateDates": duplicate_dates, "deletedRecords": deleted}
    await log.log_info("off_day", "Очистка дубликатов", stats)
    return {
        "success": True,
        "message": f"{deleted} yinelenen kayıt silindi",
        "stats": stats,
    }
