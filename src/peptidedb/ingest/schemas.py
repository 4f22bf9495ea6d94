"""Pydantic models for every external payload the adapters consume.

Each source gets explicit models with explicit optionality. Unknown keys are
ignored and wrong-shaped values collapse to empty defaults, so untrusted
payload handling lives here and nowhere else. Adapters call
:func:`parse_payload` once per response and work with typed attributes.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    f = _as_float(value)
    return int(f) if f is not None else None


LenientList = Annotated[List[T], BeforeValidator(_as_list)]
LenientStr = Annotated[str, BeforeValidator(_as_str)]
LenientFloat = Annotated[Optional[float], BeforeValidator(_as_float)]
LenientInt = Annotated[Optional[int], BeforeValidator(_as_int)]
StrictTrue = Annotated[bool, BeforeValidator(lambda v: v is True)]


class _Payload(BaseModel):
    """Base for external payloads: non-mapping input becomes an empty model."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_mapping(cls, data: Any) -> Any:
        return data if isinstance(data, dict) else {}


def parse_payload(model: Type[M], payload: Any) -> M:
    """Validate ``payload`` into ``model``; an empty model on schema mismatch."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        logger.debug(f"{model.__name__} schema mismatch: {e.error_count()} errors")
        return model()


# ---------------------------------------------------------------------------
# ClinicalTrials.gov v2 /studies
# ---------------------------------------------------------------------------

class CtDateStruct(_Payload):
    date: LenientStr = ""


class CtStatusModule(_Payload):
    overall_status: LenientStr = Field("", alias="overallStatus")
    last_update_post: CtDateStruct = Field(default_factory=CtDateStruct, alias="lastUpdatePostDateStruct")
    last_update_submit: CtDateStruct = Field(default_factory=CtDateStruct, alias="lastUpdateSubmitDateStruct")


class CtConditionsModule(_Payload):
    conditions: LenientList[LenientStr] = Field(default_factory=list)


class CtProtocolSection(_Payload):
    status_module: CtStatusModule = Field(default_factory=CtStatusModule, alias="statusModule")
    conditions_module: CtConditionsModule = Field(default_factory=CtConditionsModule, alias="conditionsModule")


class CtStudy(_Payload):
    protocol_section: CtProtocolSection = Field(default_factory=CtProtocolSection, alias="protocolSection")
    has_results: StrictTrue = Field(False, alias="hasResults")


class CtSearchResponse(_Payload):
    studies: LenientList[CtStudy] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# NCBI E-utilities (esearch / esummary)
# ---------------------------------------------------------------------------

class ESearchResult(_Payload):
    count: LenientInt = 0
    idlist: LenientList[LenientStr] = Field(default_factory=list)


class ESearchResponse(_Payload):
    esearchresult: ESearchResult = Field(default_factory=ESearchResult)


class ESummaryRecord(_Payload):
    title: LenientStr = ""
    pubdate: LenientStr = ""


class ESummaryResponse(_Payload):
    result: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _result_mapping(cls, data: Any) -> Any:
        if isinstance(data, dict) and not isinstance(data.get("result"), dict):
            data = {**data, "result": {}}
        return data

    def record(self, pmid: str) -> ESummaryRecord:
        return parse_payload(ESummaryRecord, self.result.get(pmid))


# ---------------------------------------------------------------------------
# openFDA drug label
# ---------------------------------------------------------------------------

class OpenFdaLabel(_Payload):
    indications_and_usage: LenientList[LenientStr] = Field(default_factory=list)
    dosage_and_administration: LenientList[LenientStr] = Field(default_factory=list)
    contraindications: LenientList[LenientStr] = Field(default_factory=list)
    warnings_and_cautions: LenientList[LenientStr] = Field(default_factory=list)
    adverse_reactions: LenientList[LenientStr] = Field(default_factory=list)
    drug_interactions: LenientList[LenientStr] = Field(default_factory=list)
    clinical_pharmacology: LenientList[LenientStr] = Field(default_factory=list)


class OpenFdaResponse(_Payload):
    results: LenientList[OpenFdaLabel] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# PubChem PUG REST / PUG View
# ---------------------------------------------------------------------------

class PubChemIdentifierList(_Payload):
    cid: LenientList[LenientInt] = Field(default_factory=list, alias="CID")


class PubChemCidResponse(_Payload):
    identifier_list: PubChemIdentifierList = Field(default_factory=PubChemIdentifierList, alias="IdentifierList")

    @property
    def first_cid(self) -> Optional[int]:
        return next((c for c in self.identifier_list.cid if c), None)


class PugViewMarkup(_Payload):
    string: LenientStr = Field("", alias="String")


class PugViewValue(_Payload):
    string_with_markup: LenientList[PugViewMarkup] = Field(default_factory=list, alias="StringWithMarkup")


class PugViewInformation(_Payload):
    value: PugViewValue = Field(default_factory=PugViewValue, alias="Value")


class PugViewSubsection(_Payload):
    information: LenientList[PugViewInformation] = Field(default_factory=list, alias="Information")


class PugViewSection(_Payload):
    section: LenientList[PugViewSubsection] = Field(default_factory=list, alias="Section")


class PugViewRecord(_Payload):
    section: LenientList[PugViewSection] = Field(default_factory=list, alias="Section")


class PugViewResponse(_Payload):
    record: PugViewRecord = Field(default_factory=PugViewRecord, alias="Record")

    def first_description(self) -> str:
        for section in self.record.section:
            for block in section.section:
                for info in block.information:
                    for markup in info.value.string_with_markup:
                        if markup.string:
                            return markup.string
        return ""


class PubChemSynonymInfo(_Payload):
    synonym: LenientList[LenientStr] = Field(default_factory=list, alias="Synonym")


class PubChemInformationList(_Payload):
    information: LenientList[PubChemSynonymInfo] = Field(default_factory=list, alias="Information")


class PubChemSynonymResponse(_Payload):
    information_list: PubChemInformationList = Field(default_factory=PubChemInformationList, alias="InformationList")


class PubChemProperties(_Payload):
    molecular_formula: LenientStr = Field("", alias="MolecularFormula")
    molecular_weight: LenientStr = Field("", alias="MolecularWeight")


class PubChemPropertyTable(_Payload):
    properties: LenientList[PubChemProperties] = Field(default_factory=list, alias="Properties")


class PubChemPropertyResponse(_Payload):
    property_table: PubChemPropertyTable = Field(default_factory=PubChemPropertyTable, alias="PropertyTable")


# ---------------------------------------------------------------------------
# ChEMBL REST
# ---------------------------------------------------------------------------

class ChemblMolecule(_Payload):
    molecule_chembl_id: LenientStr = ""
    pref_name: LenientStr = ""
    molecule_type: LenientStr = ""
    max_phase: LenientFloat = None
    first_approval: LenientInt = None


class ChemblSearchResponse(_Payload):
    molecules: LenientList[ChemblMolecule] = Field(default_factory=list)


class ChemblMechanism(_Payload):
    mechanism_of_action: LenientStr = ""
    target_pref_name: LenientStr = ""
    action_type: LenientStr = ""


class ChemblMechanismResponse(_Payload):
    mechanisms: LenientList[ChemblMechanism] = Field(default_factory=list)


class ChemblIndication(_Payload):
    mesh_heading: LenientStr = ""
    efo_term: LenientStr = ""


class ChemblIndicationResponse(_Payload):
    drug_indications: LenientList[ChemblIndication] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Social sources
# ---------------------------------------------------------------------------

class RedditPostData(_Payload):
    id: LenientStr = ""
    title: LenientStr = ""
    selftext: LenientStr = ""
    permalink: LenientStr = ""
    url: LenientStr = ""
    subreddit: LenientStr = ""
    author: LenientStr = ""
    score: LenientFloat = None
    num_comments: LenientInt = None
    created_utc: LenientFloat = None


class RedditChild(_Payload):
    data: RedditPostData = Field(default_factory=RedditPostData)


class RedditListingData(_Payload):
    children: LenientList[RedditChild] = Field(default_factory=list)


class RedditListing(_Payload):
    data: RedditListingData = Field(default_factory=RedditListingData)


class HackerNewsHit(_Payload):
    object_id: LenientStr = Field("", alias="objectID")
    title: LenientStr = ""
    story_title: LenientStr = ""
    comment_text: LenientStr = ""
    story_text: LenientStr = ""
    url: LenientStr = ""
    author: LenientStr = ""
    points: LenientFloat = None
    num_comments: LenientInt = None
    created_at: LenientStr = ""


class HackerNewsResponse(_Payload):
    hits: LenientList[HackerNewsHit] = Field(default_factory=list)


class TrustpilotDates(_Payload):
    published_date: LenientStr = Field("", alias="publishedDate")
    experienced_date: LenientStr = Field("", alias="experiencedDate")
    created_at: LenientStr = Field("", alias="createdAt")


class TrustpilotConsumer(_Payload):
    display_name: LenientStr = Field("", alias="displayName")
    name: LenientStr = ""


class TrustpilotReview(_Payload):
    id: LenientStr = ""
    title: LenientStr = ""
    text: LenientStr = ""
    rating: LenientFloat = None
    dates: TrustpilotDates = Field(default_factory=TrustpilotDates)
    consumer: TrustpilotConsumer = Field(default_factory=TrustpilotConsumer)


class TrustpilotPageProps(_Payload):
    reviews: LenientList[TrustpilotReview] = Field(default_factory=list)


class TrustpilotProps(_Payload):
    page_props: TrustpilotPageProps = Field(default_factory=TrustpilotPageProps, alias="pageProps")


class TrustpilotNextData(_Payload):
    props: TrustpilotProps = Field(default_factory=TrustpilotProps)
