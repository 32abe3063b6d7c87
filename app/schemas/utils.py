"""Annotations Pydantic réutilisables pour validation.

Ce module centralise les types annotés pour assurer la cohérence
de la validation à travers tous les schémas Pydantic du service.
"""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints
from pydantic.alias_generators import to_camel

# Chaînes avec contraintes
NonEmptyStr = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]

# Téléphones: format local ou international
PhoneNumber = Annotated[
    str,
    StringConstraints(
        pattern=r"^\+?[0-9][0-9 \-]{5,19}$",
        strip_whitespace=True,
    ),
    Field(
        description="Numéro de téléphone (local ou international)",
        examples=["+584121234567", "0412-1234567"],
    ),
]

Email = Annotated[EmailStr, Field(description="Adresse email valide")]
Description = Annotated[str, Field(max_length=2000, description="Description texte")]

# Identifiant national (cédule, passeport)
NationalId = Annotated[
    str,
    StringConstraints(min_length=3, max_length=50, strip_whitespace=True),
    Field(description="Numéro d'identification nationale", examples=["V-12345678"]),
]


class CamelModel(BaseModel):
    """
    Base des schémas échangés en camelCase avec les clients web.

    Les attributs Python restent en snake_case; la sérialisation par alias
    produit les clés camelCase attendues (roleUserId, organizationId...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
