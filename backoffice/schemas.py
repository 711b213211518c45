from typing import Annotated, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    HttpUrl,
    StringConstraints,
    model_validator,
)

from .common import normalize_participants

DealStage = Literal["Lead", "Gekwalificeerd", "Voorstel", "Onderhandeling", "Gewonnen", "Verloren"]
CompanyStatus = Literal["Actief", "Inactief", "Nieuw"]
ProjectStatus = Literal["Actief", "On Hold", "Afgerond"]
InvoiceStatus = Literal[
    "Concept", "Verzonden", "Openstaand", "Achterstallig", "Betaald", "Gecrediteerd", "Geannuleerd"
]
QuoteStatus = Literal["Openstaand", "Geaccepteerd", "Afgewezen"]
DimensionUnit = Literal["mm", "cm", "m"]
AiProvider = Literal["openai", "gemini"]

DEAL_STAGES = list(DealStage.__args__)
PROJECT_STATUSES = list(ProjectStatus.__args__)
INVOICE_STATUSES = list(InvoiceStatus.__args__)
QUOTE_STATUSES = list(QuoteStatus.__args__)
DIMENSION_UNITS = list(DimensionUnit.__args__)


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _stringify(value):
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def _dimension_value(value):
    if value is None:
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        return trimmed.replace(",", ".")
    return value


def aliases(*names):
    return AliasChoices(*names)


Text = Annotated[str, StringConstraints(strip_whitespace=True)]
RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[Optional[Text], BeforeValidator(_blank_to_none)]
OptionalEmail = Annotated[Optional[EmailStr], BeforeValidator(_blank_to_none)]
CompanyId = Annotated[Optional[Annotated[int, Field(gt=0)]], BeforeValidator(_blank_to_none)]
DimensionValue = Annotated[
    Optional[Annotated[float, Field(gt=0, le=100_000)]],
    BeforeValidator(_dimension_value),
]


class Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def changes(self) -> dict:
        """Only the fields the client actually sent."""
        return {name: getattr(self, name) for name in self.model_fields_set}


# ================= COMPANIES =================

class CompanyUpdate(Payload):
    naam: Optional[RequiredText] = Field(None, validation_alias=aliases("naam", "name"))
    sector: OptionalText = None
    stad: OptionalText = Field(None, validation_alias=aliases("stad", "location", "city"))
    adres: OptionalText = Field(None, validation_alias=aliases("adres", "address"))
    postcode: OptionalText = None
    website: Annotated[Optional[HttpUrl], BeforeValidator(_blank_to_none)] = None
    telefoon: OptionalText = Field(None, validation_alias=aliases("telefoon", "phone"))
    email: OptionalEmail = None
    beschrijving: OptionalText = Field(None, validation_alias=aliases("beschrijving", "description"))
    kvk: OptionalText = None
    btw: OptionalText = Field(None, validation_alias=aliases("btw", "vatNumber"))
    status: Optional[CompanyStatus] = None


class CompanyCreate(CompanyUpdate):
    naam: RequiredText = Field(validation_alias=aliases("naam", "name"))
    status: CompanyStatus = "Actief"


# ================= CONTACTS =================

class ContactUpdate(Payload):
    voornaam: Optional[RequiredText] = Field(None, validation_alias=aliases("voornaam", "firstName"))
    achternaam: Optional[RequiredText] = Field(None, validation_alias=aliases("achternaam", "lastName"))
    email: OptionalEmail = None
    telefoon: OptionalText = Field(None, validation_alias=aliases("telefoon", "phone"))
    functie: OptionalText = Field(None, validation_alias=aliases("functie", "position"))
    bedrijf: Optional[Text] = Field(None, validation_alias=aliases("bedrijf", "companyName"))
    bedrijf_id: CompanyId = Field(None, validation_alias=aliases("bedrijfId", "bedrijf_id", "companyId"))


class ContactCreate(ContactUpdate):
    voornaam: RequiredText = Field(validation_alias=aliases("voornaam", "firstName"))
    achternaam: RequiredText = Field(validation_alias=aliases("achternaam", "lastName"))


# ================= DEALS =================

class DealUpdate(Payload):
    titel: Optional[RequiredText] = None
    bedrijf: Optional[Text] = None
    bedrijf_id: CompanyId = Field(None, validation_alias=aliases("bedrijfId", "bedrijf_id"))
    waarde: Optional[Annotated[float, Field(ge=0)]] = None
    stadium: Optional[DealStage] = None
    kans: Optional[Annotated[int, Field(ge=0, le=100)]] = None
    deadline: Optional[str] = None


class DealCreate(DealUpdate):
    titel: RequiredText
    waarde: Annotated[float, Field(ge=0)]
    stadium: DealStage = "Lead"
    kans: Annotated[int, Field(ge=0, le=100)] = 50


# ================= PROJECTS =================

class ProjectUpdate(Payload):
    naam: Optional[RequiredText] = None
    beschrijving: OptionalText = None
    bedrijf: Optional[Text] = None
    bedrijf_id: CompanyId = Field(None, validation_alias=aliases("bedrijfId", "bedrijf_id"))
    status: Optional[ProjectStatus] = None
    voortgang: Optional[Annotated[int, Field(ge=0, le=100)]] = None
    deadline: Optional[str] = None
    budget: Optional[Annotated[float, Field(ge=0)]] = None
    budget_gebruikt: Optional[Annotated[float, Field(ge=0)]] = Field(
        None, validation_alias=aliases("budgetGebruikt", "budget_gebruikt")
    )


class ProjectCreate(ProjectUpdate):
    naam: RequiredText
    status: ProjectStatus = "Actief"
    voortgang: Annotated[int, Field(ge=0, le=100)] = 0
    budget: Annotated[float, Field(ge=0)] = 0


# ================= APPOINTMENTS =================

Participants = Annotated[list[str], BeforeValidator(normalize_participants)]


class AppointmentUpdate(Payload):
    titel: Optional[RequiredText] = None
    beschrijving: OptionalText = None
    datum: OptionalText = None
    start_tijd: OptionalText = Field(None, validation_alias=aliases("startTijd", "start_tijd"))
    eind_tijd: OptionalText = Field(None, validation_alias=aliases("eindTijd", "eind_tijd"))
    locatie: OptionalText = None
    deelnemers: Optional[Participants] = None
    bedrijf: Optional[Text] = None
    bedrijf_id: CompanyId = Field(None, validation_alias=aliases("bedrijfId", "bedrijf_id"))


class AppointmentCreate(AppointmentUpdate):
    titel: RequiredText = Field(validation_alias=aliases("titel", "onderwerp"))
    datum: RequiredText
    start_tijd: RequiredText = Field(validation_alias=aliases("startTijd", "tijd", "start_tijd"))
    deelnemers: Participants = Field(default_factory=list)


# ================= FINANCE =================

class IncomeUpdate(Payload):
    titel: OptionalText = None
    omschrijving: OptionalText = None
    bedrag: Optional[Annotated[float, Field(gt=0)]] = None
    datum: Optional[str] = None
    categorie: OptionalText = None
    betaalmethode: OptionalText = None
    bedrijf: Optional[Text] = None
    bedrijf_id: CompanyId = Field(None, validation_alias=aliases("bedrijfId", "bedrijf_id"))


class IncomeCreate(IncomeUpdate):
    bedrag: Annotated[float, Field(gt=0)]

    @model_validator(mode="after")
    def _title_or_description(self):
        if not (self.titel or self.omschrijving):
            raise ValueError("Titel of omschrijving is verplicht")
        return self


class ExpenseUpdate(IncomeUpdate):
    leverancier: OptionalText = None


class ExpenseCreate(IncomeCreate):
    leverancier: OptionalText = None


# ================= INVOICES =================

class InvoiceItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Annotated[RequiredText, BeforeValidator(_stringify)]
    omschrijving: RequiredText
    aantal: Annotated[float, Field(gt=0)]
    prijs: Annotated[float, Field(ge=0)]
    btw: Annotated[float, Field(ge=0)]


class InvoiceCreate(Payload):
    nummer: OptionalText = None
    klant: RequiredText
    klant_email: EmailStr = Field(validation_alias=aliases("klantEmail", "klant_email"))
    datum: Optional[str] = None
    verval_datum: Optional[str] = Field(None, validation_alias=aliases("vervalDatum", "verval_datum"))
    status: InvoiceStatus = "Concept"
    items: Annotated[list[InvoiceItem], Field(min_length=1)]
    notities: Optional[str] = None


class InvoiceUpdate(Payload):
    status: Optional[InvoiceStatus] = None
    betaald_op: Optional[str] = Field(None, validation_alias=aliases("betaaldOp", "paidAt"))
    betaal_methode: Optional[str] = Field(None, validation_alias=aliases("betaalMethode", "paymentMethod"))
    increment_herinnering: Optional[bool] = Field(None, validation_alias=aliases("incrementHerinnering"))
    reminders_sent: Optional[Annotated[int, Field(ge=0)]] = Field(
        None, validation_alias=aliases("remindersSent")
    )
    timeline: Optional[Union[str, list]] = None


# ================= QUOTES =================

class Room(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Annotated[RequiredText, BeforeValidator(_stringify)]
    name: RequiredText
    description: Optional[str] = None
    length: DimensionValue = None
    width: DimensionValue = None
    height: DimensionValue = None
    area: DimensionValue = None
    volume: DimensionValue = None
    unit: Optional[str] = None


class Dimensions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    lengte: DimensionValue = None
    breedte: DimensionValue = None
    hoogte: DimensionValue = None
    eenheid: Annotated[DimensionUnit, BeforeValidator(lambda v: "cm" if v in (None, "") else v)] = "cm"
    rooms: Optional[list[Room]] = None

    def as_payload(self):
        """Rooms win over the legacy single measurement; no values at all means no dimensions."""
        if self.rooms:
            return {
                "rooms": [room.model_dump(exclude_none=True) for room in self.rooms],
                "eenheid": self.eenheid,
            }
        if self.lengte is None and self.breedte is None and self.hoogte is None:
            return None
        return {
            "lengte": self.lengte,
            "breedte": self.breedte,
            "hoogte": self.hoogte,
            "eenheid": self.eenheid,
        }


class QuoteUpdate(Payload):
    klant: Optional[RequiredText] = None
    bedrag: Optional[Annotated[float, Field(gt=0)]] = None
    datum: Optional[str] = None
    geldig_tot: Optional[str] = Field(None, validation_alias=aliases("geldigTot", "geldig_tot", "validtot"))
    status: Optional[QuoteStatus] = None
    afmetingen: Optional[Dimensions] = Field(None, validation_alias=aliases("afmetingen", "dimensions"))


class QuoteCreate(QuoteUpdate):
    nummer: OptionalText = None
    klant: RequiredText = Field(validation_alias=aliases("klant", "bedrijf"))
    bedrag: Annotated[float, Field(gt=0)]
    status: QuoteStatus = "Openstaand"
    bedrijf_id: CompanyId = Field(None, validation_alias=aliases("bedrijfId", "bedrijf_id"))
    ai_provider: Annotated[Optional[AiProvider], BeforeValidator(_blank_to_none)] = Field(
        None, validation_alias=aliases("aiProvider", "ai_provider")
    )


class AnalyzeRequest(Payload):
    ai_provider: Annotated[Optional[AiProvider], BeforeValidator(_blank_to_none)] = Field(
        None, validation_alias=aliases("aiProvider", "ai_provider")
    )
