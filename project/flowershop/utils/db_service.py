# flowershop/utils/db_service.py

import datetime
from typing import Any, Iterable

from fastapi import HTTPException, Request
from sqlalchemy import inspect
from sqlalchemy.future import select

from flowershop.utils.database import as_utc
from flowershop.utils.transform import to_camel_case


def row_to_dict(obj: Any, exclude: Iterable[str] = ()) -> dict:
    """ORM-объект → dict по колонкам таблицы (snake_case), даты в ISO UTC."""
    data = {}
    for column in inspect(obj).mapper.column_attrs:
        key = column.key
        if key in exclude:
            continue
        value = getattr(obj, key)
        if isinstance(value, datetime.datetime):
            value = as_utc(value).isoformat()
        data[key] = value
    return data


def to_api(obj: Any, exclude: Iterable[str] = ()) -> dict | None:
    """ORM-объект → ответ API в camelCase. Вложенный JSON тоже переводится."""
    if obj is None:
        return None
    return to_camel_case(row_to_dict(obj, exclude))


async def get_or_404(request: Request, model, id: Any, target: str, detail: str):
    """Загружает запись по первичному ключу или отвечает 404 с логированием."""
    db = request.state.db
    log = request.app.state.log

    result = await db.execute(select(model).where(model.id == id))
    obj = result.scalar_one_or_none()
    if obj is None:
        await log.log_error(target, detail, {"id": id})
        raise HTTPException(status_code=404, detail=detail)
    return obj
