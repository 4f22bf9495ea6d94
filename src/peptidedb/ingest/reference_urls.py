"""
Human-navigable URLs for citations.

Adapters record the machine API URL they queried. Citations store the page a
reader can open instead: the registry search page, the PubMed record, the
compound report card.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import parse_qs, quote, urlparse, urlunparse

ALLOWED_SCHEMES = ("http", "https")

_CHEMBL_MOLECULE_PATH = re.compile(r"/chembl/api/data/molecule/([^/.]+)\.json", re.IGNORECASE)
_PUBCHEM_CID_PATH = re.compile(r"/compound/(?:cid/)?(\d+)", re.IGNORECASE)
_QUOTED = re.compile(r'"([^"]+)"')


def sanitize_external_url(value: Optional[str]) -> Optional[str]:
    """Return the trimmed URL when it is absolute http(s), else None."""
    if not value or not value.strip():
        return None
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return None
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.netloc:
        return None
    return urlunparse(parsed)


def _host_equals(host: str, expected: str) -> bool:
    return host == expected or host == f"www.{expected}"


def _host_matches(host: str, expected: str) -> bool:
    return _host_equals(host, expected) or host.endswith(f".{expected}")


def _param(params: dict, *names: str) -> str:
    for name in names:
        for value in params.get(name, []):
            if value.strip():
                return value.strip()
    return ""


def clinicaltrials_search_url(term: str) -> str:
    term = term.strip()
    return f"https://clinicaltrials.gov/search?term={quote(term)}" if term else "https://clinicaltrials.gov/"


def pubmed_search_url(term: str) -> str:
    term = term.strip()
    return f"https://pubmed.ncbi.nlm.nih.gov/?term={quote(term)}" if term else "https://pubmed.ncbi.nlm.nih.gov/"


def fda_label_search_url(term: str) -> str:
    term = term.strip()
    if not term:
        return "https://www.accessdata.fda.gov/scripts/cder/daf/"
    return (
        "https://www.accessdata.fda.gov/scripts/cder/daf/index.cfm"
        f"?event=BasicSearch.process&searchterm={quote(term)}&search=Search"
    )


def pubchem_compound_url(cid: int) -> str:
    return f"https://pubchem.ncbi.nlm.nih.gov/compound/{int(cid)}"


def chembl_compound_url(chembl_id: str) -> str:
    return f"https://www.ebi.ac.uk/chembl/compound_report_card/{quote(chembl_id.strip())}/"


def to_human_readable_url(raw_url: Optional[str]) -> Optional[str]:
    """Map a queried API URL to the page a reader would open.

    Unknown hosts pass through unchanged; non-http(s) input returns None.
    """
    safe = sanitize_external_url(raw_url)
    if not safe:
        return None

    parsed = urlparse(safe)
    host = (parsed.hostname or "").lower()
    path = parsed.path.lower()
    params = parse_qs(parsed.query)

    if _host_equals(host, "clinicaltrials.gov"):
        if path.startswith("/api/v2/studies"):
            return clinicaltrials_search_url(_param(params, "query.term", "query.cond"))
        return safe

    if _host_equals(host, "eutils.ncbi.nlm.nih.gov") and "/entrez/eutils/" in path:
        if _param(params, "db").lower() == "pubmed":
            pmid = _param(params, "id")
            if pmid and "," not in pmid:
                return f"https://pubmed.ncbi.nlm.nih.gov/{quote(pmid)}/"
            return pubmed_search_url(_param(params, "term"))
        return "https://www.ncbi.nlm.nih.gov/"

    if _host_equals(host, "api.fda.gov") and path == "/drug/label.json":
        search = _param(params, "search")
        match = _QUOTED.search(search)
        if match:
            term = match.group(1).strip()
        else:
            term = re.sub(r"\s+", " ", re.sub(r"\s+OR\s+|[()]", " ", search, flags=re.IGNORECASE)).strip()
        return fda_label_search_url(term)

    if _host_equals(host, "ebi.ac.uk"):
        match = _CHEMBL_MOLECULE_PATH.search(parsed.path)
        if match:
            return chembl_compound_url(match.group(1))
        chembl_id = _param(params, "molecule_chembl_id")
        if chembl_id:
            return chembl_compound_url(chembl_id)

    if _host_equals(host, "pubchem.ncbi.nlm.nih.gov") and "/rest/" in path:
        match = _PUBCHEM_CID_PATH.search(parsed.path)
        if match:
            return pubchem_compound_url(int(match.group(1)))

    if _host_matches(host, "reddit.com"):
        if path.endswith(".json"):
            new_path = re.sub(r"\.json$", "", parsed.path, flags=re.IGNORECASE)
            if new_path.endswith("/search"):
                new_path += "/"
            return urlunparse(parsed._replace(path=new_path))
        return safe

    if _host_equals(host, "hn.algolia.com") and path.startswith("/api/v1/"):
        query = _param(params, "query")
        if not query:
            return "https://hn.algolia.com/"
        return f"https://hn.algolia.com/?query={quote(query)}&sort=byDate&type=story"

    return safe
