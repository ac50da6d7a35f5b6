# flowershop/schemas/base.py

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Входные схемы API: принимают и camelCase (фронтенд), и snake_case
    (старые клиенты и скрипты импорта).
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )
