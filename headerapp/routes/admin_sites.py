from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field

from headerapp.engine import HeaderResolutionEngine
from headerapp.settings import HeaderAppSettings

_log = logging.getLogger(__name__)


def _settings(request: Request) -> HeaderAppSettings:
    return request.app.state.settings


def _engine(request: Request) -> HeaderResolutionEngine:
    return request.app.state.engine


def _store(request: Request) -> Any:
    return request.app.state.secret_store


def _require_admin_dep(request: Request) -> None:
    cfg_key = _settings(request).admin_api_key
    if cfg_key:
        supplied = request.headers.get("X-Admin-Key") or request.query_params.get("admin_key")
        if str(supplied) != str(cfg_key):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Admin authentication required",
            )
    return None


router = APIRouter(
    prefix="/admin/sites",
    tags=["admin-sites"],
    dependencies=[Depends(_require_admin_dep)],
)


class SiteFields(BaseModel):
    fields: Dict[str, str] = Field(default_factory=dict)


class SiteConfig(BaseModel):
    site: str
    fields: Dict[str, str]


class SiteList(BaseModel):
    sites: List[str]


class ResolvePreview(BaseModel):
    site: str
    url: str
    matched: bool
    headers: Optional[Dict[str, str]] = None


@router.get("", response_model=SiteList)
def list_sites(request: Request) -> SiteList:
    settings = _settings(request)
    return SiteList(sites=sorted(_store(request).list_sites(settings.app_key)))


@router.get("/{site}", response_model=SiteConfig)
def get_site(site: str, request: Request) -> SiteConfig:
    settings = _settings(request)
    fields = _store(request).get_secrets(settings.app_key, site, settings.acting_user)
    if not fields:
        raise HTTPException(status_code=404, detail=f"no configuration for site {site}")
    return SiteConfig(site=site, fields=dict(fields))


@router.put("/{site}", response_model=SiteConfig)
def put_site(site: str, body: SiteFields, request: Request) -> SiteConfig:
    settings = _settings(request)
    if not body.fields:
        raise HTTPException(status_code=422, detail="fields must not be empty")
    _store(request).save_secrets(settings.app_key, site, body.fields)
    _log.info("saved header configuration", extra={"site": site, "fields": len(body.fields)})
    return SiteConfig(site=site, fields=dict(body.fields))


@router.delete("/{site}", status_code=204)
def delete_site(site: str, request: Request) -> Response:
    settings = _settings(request)
    if not _store(request).delete_secrets(settings.app_key, site):
        raise HTTPException(status_code=404, detail=f"no configuration for site {site}")
    _log.info("deleted header configuration", extra={"site": site})
    return Response(status_code=204)


@router.get("/{site}/resolve", response_model=ResolvePreview)
def resolve_preview(
    site: str,
    request: Request,
    url: str = Query(..., min_length=1),
) -> ResolvePreview:
    headers = _engine(request).resolve_headers(url, site)
    return ResolvePreview(site=site, url=url, matched=headers is not None, headers=headers)
