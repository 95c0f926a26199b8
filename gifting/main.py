import logging
from datetime import date, datetime
from pathlib import Path

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from sqlalchemy import text
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gifting import models  # noqa: F401  registers tables on Base.metadata
from gifting.coercion import CampaignStatus, clean_handle
from gifting.config import BRANDS, settings
from gifting.database import Base, SessionLocal, engine
from gifting.duplicates import check_duplicates
from gifting.header_mapping import (
    ImportField,
    auto_detect_mapping,
    has_handle_mapping,
    override_mapping,
    unmapped_fields,
)
from gifting.importer import execute_import
from gifting.reports import dashboard_stats, export_campaigns_csv, export_campaigns_xlsx, load_campaign_frame
from gifting.row_mapping import ShippingDefaults, map_rows
from gifting.scoring import rank_influencers
from gifting.validation import validate_required_fields
from gifting.workbook_import import (
    PREVIEW_ROW_LIMIT,
    UploadSession,
    UploadSessionStore,
    build_import_template,
    read_spreadsheet,
)

BASE_DIR = Path(__file__).resolve().parent
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

app = FastAPI(title="Gifting Dashboard")
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")
logger = logging.getLogger(__name__)

upload_sessions = UploadSessionStore(limit=settings.upload_session_limit)


@app.on_event("startup")
def ensure_tables():
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def resolve_brand(value: str | None) -> str:
    cleaned = (value or "").strip().upper()
    if not cleaned:
        return settings.default_brand
    if cleaned not in BRANDS:
        raise HTTPException(status_code=400, detail=f"Unknown brand '{value}'. Use one of {', '.join(BRANDS)}.")
    return cleaned


def parse_optional_float(value: str | None, field_name: str) -> float | None:
    if value is None:
        return None
    cleaned = value.strip().replace(",", "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}. Enter a number.") from exc


def json_safe(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [json_safe(v) for v in value]
    return value


def base_context(brand: str) -> dict:
    return {"brand": brand, "brands": BRANDS}


# ---------------------------------------------------------------------------
# Dashboard, influencers, campaigns
# ---------------------------------------------------------------------------

def load_ranking(db: Session, brand: str) -> list[dict]:
    influencers = db.execute(
        text(
            """
            SELECT id, brand, insta_name, insta_url, tiktok_name, tiktok_url
            FROM influencers
            WHERE brand = :brand
            ORDER BY id
            """
        ),
        {"brand": brand},
    ).mappings().all()
    campaigns = db.execute(
        text(
            """
            SELECT influencer_id, likes, comments, agreed_amount, consideration_comment,
                   desired_post_date, post_date
            FROM campaigns
            WHERE brand = :brand
            """
        ),
        {"brand": brand},
    ).mappings().all()
    return rank_influencers(influencers, campaigns)


@app.get("/health")
def health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"ok": True}


@app.get("/")
def dashboard(request: Request, brand: str = Query(""), db: Session = Depends(get_db)):
    brand_value = resolve_brand(brand)
    frame = load_campaign_frame(db, brand_value)
    influencer_count = db.execute(
        text("SELECT COUNT(*) FROM influencers WHERE brand = :brand"), {"brand": brand_value}
    ).scalar_one()
    stats = dashboard_stats(frame, influencer_count)
    top_influencers = load_ranking(db, brand_value)[:5]
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {**base_context(brand_value), "stats": stats, "top_influencers": top_influencers},
    )


def render_influencers_page(
    request: Request,
    db: Session,
    brand: str,
    *,
    status_code: int = 200,
    form_error: str = "",
    form_values: dict[str, str] | None = None,
):
    return templates.TemplateResponse(
        request,
        "influencers.html",
        {
            **base_context(brand),
            "ranking": load_ranking(db, brand),
            "form_error": form_error,
            "form_values": form_values or {},
        },
        status_code=status_code,
    )


@app.get("/influencers")
def influencers_page(request: Request, brand: str = Query(""), db: Session = Depends(get_db)):
    return render_influencers_page(request, db, resolve_brand(brand))


@app.post("/influencers")
def create_influencer(
    request: Request,
    brand: str = Form(""),
    insta_name: str = Form(""),
    insta_url: str = Form(""),
    tiktok_name: str = Form(""),
    tiktok_url: str = Form(""),
    db: Session = Depends(get_db),
):
    brand_value = resolve_brand(brand)
    form_values = {
        "insta_name": clean_handle(insta_name),
        "insta_url": insta_url.strip(),
        "tiktok_name": clean_handle(tiktok_name),
        "tiktok_url": tiktok_url.strip(),
    }
    if not form_values["insta_name"] and not form_values["tiktok_name"]:
        return render_influencers_page(
            request,
            db,
            brand_value,
            status_code=400,
            form_error="Enter an Instagram or TikTok name.",
            form_values=form_values,
        )

    column = "insta_name" if form_values["insta_name"] else "tiktok_name"
    existing = db.execute(
        text(f"SELECT id FROM influencers WHERE brand = :brand AND LOWER({column}) = LOWER(:handle)"),
        {"brand": brand_value, "handle": form_values[column]},
    ).first()
    if existing is not None:
        return render_influencers_page(
            request,
            db,
            brand_value,
            status_code=400,
            form_error=f"@{form_values[column]} is already registered for {brand_value}.",
            form_values=form_values,
        )

    try:
        db.execute(
            text(
                """
                INSERT INTO influencers (brand, insta_name, insta_url, tiktok_name, tiktok_url)
                VALUES (:brand, NULLIF(:insta_name, ''), NULLIF(:insta_url, ''),
                        NULLIF(:tiktok_name, ''), NULLIF(:tiktok_url, ''))
                """
            ),
            {"brand": brand_value, **form_values},
        )
        db.commit()
    except (IntegrityError, DataError):
        db.rollback()
        return render_influencers_page(
            request,
            db,
            brand_value,
            status_code=400,
            form_error="Could not create influencer. Check for invalid values.",
            form_values=form_values,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Unexpected database error while creating influencer")
        raise HTTPException(status_code=500, detail="Unexpected server error while creating influencer.") from exc

    return RedirectResponse(url=f"/influencers?brand={brand_value}", status_code=303)


@app.get("/campaigns")
def campaigns_page(
    request: Request,
    brand: str = Query(""),
    status: str = Query(""),
    item_code: str = Query(""),
    q: str = Query(""),
    db: Session = Depends(get_db),
):
    brand_value = resolve_brand(brand)
    status_value = status.strip().lower()
    if status_value and status_value not in {s.value for s in CampaignStatus}:
        raise HTTPException(status_code=400, detail="Invalid status filter")

    frame = load_campaign_frame(db, brand_value, status=status_value, item_code=item_code.strip(), query=q)
    campaigns = frame.astype(object).where(frame.notna(), None).to_dict(orient="records")
    return templates.TemplateResponse(
        request,
        "campaigns.html",
        {
            **base_context(brand_value),
            "campaigns": campaigns,
            "statuses": [s.value for s in CampaignStatus],
            "filters": {"status": status_value, "item_code": item_code.strip(), "q": q.strip()},
        },
    )


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def build_preview(db: Session, session: UploadSession) -> dict:
    records = map_rows(
        session.sheet.rows,
        session.mapping,
        session.sheet.headers,
        brand=session.brand,
        day_first=settings.date_day_first,
    )
    report = check_duplicates(db, records, brand=session.brand)
    row_errors = validate_required_fields(records)
    warnings = [f"Row {r.row_number} (@{r.handle}): {w}" for r in records for w in r.warnings]
    return {
        "records": records[:PREVIEW_ROW_LIMIT],
        "record_count": len(records),
        "dropped_count": session.sheet.data_row_count - len(records),
        "duplicates": report,
        "duplicate_count": len(report.flagged_indices()),
        "row_errors": row_errors,
        "warnings": warnings,
        "unmapped": unmapped_fields(session.mapping),
        "needs_handle": not has_handle_mapping(session.mapping),
    }


def render_import_page(
    request: Request,
    brand: str,
    *,
    session: UploadSession | None = None,
    preview: dict | None = None,
    result: dict | None = None,
    error: str = "",
    status_code: int = 200,
):
    return templates.TemplateResponse(
        request,
        "import.html",
        {
            **base_context(brand),
            "session": session,
            "preview": preview,
            "result": result,
            "error": error,
            "fields": list(ImportField),
            "international_brand": settings.international_shipping_brand,
            "default_shipping_country": settings.default_shipping_country,
            "default_shipping_cost": settings.default_international_shipping_cost,
        },
        status_code=status_code,
    )


@app.get("/import")
def import_page(request: Request, brand: str = Query("")):
    try:
        brand_value = resolve_brand(brand)
    except HTTPException as exc:
        return render_import_page(request, settings.default_brand, error=str(exc.detail), status_code=400)
    return render_import_page(request, brand_value)


@app.get("/import/template.xlsx")
def import_template():
    return Response(
        content=build_import_template(),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="gifting_import_template.xlsx"'},
    )


@app.post("/import/upload")
async def import_upload(
    request: Request,
    upload_file: UploadFile = File(...),
    brand: str = Form(""),
    db: Session = Depends(get_db),
):
    payload = await upload_file.read()
    brand_value = settings.default_brand
    try:
        brand_value = resolve_brand(brand)
        sheet = read_spreadsheet(payload, upload_file.filename or "upload.xlsx")
        session = upload_sessions.create(sheet, brand_value, auto_detect_mapping(sheet.headers))
        preview = build_preview(db, session)
    except HTTPException as exc:
        return render_import_page(request, brand_value, error=str(exc.detail), status_code=400)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Unexpected database error while previewing upload")
        return render_import_page(request, brand_value, error="Unexpected import database error.", status_code=500)

    return render_import_page(request, brand_value, session=session, preview=preview)


@app.post("/import/mapping")
def import_mapping(
    request: Request,
    token: str = Form(...),
    field: str = Form(...),
    header: str = Form(""),
    db: Session = Depends(get_db),
):
    try:
        session = upload_sessions.get(token)
    except HTTPException as exc:
        return render_import_page(request, settings.default_brand, error=str(exc.detail), status_code=400)

    error = ""
    status_code = 200
    try:
        session.mapping = override_mapping(session.mapping, session.sheet.headers, field, header)
    except HTTPException as exc:
        # keep the previous mapping and show it again with the error
        error = str(exc.detail)
        status_code = 400

    try:
        preview = build_preview(db, session)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Unexpected database error while remapping upload")
        return render_import_page(request, session.brand, error="Unexpected import database error.", status_code=500)

    return render_import_page(
        request, session.brand, session=session, preview=preview, error=error, status_code=status_code
    )


@app.post("/import/apply")
def import_apply(
    request: Request,
    token: str = Form(...),
    skip_duplicates: bool = Form(False),
    shipping_enabled: bool = Form(False),
    shipping_country: str = Form(""),
    shipping_cost: str = Form(""),
    db: Session = Depends(get_db),
):
    brand_value = settings.default_brand
    try:
        session = upload_sessions.get(token)
        brand_value = session.brand
        if not has_handle_mapping(session.mapping):
            raise HTTPException(status_code=400, detail="Map an Instagram or TikTok name column before importing.")

        shipping = None
        if brand_value == settings.international_shipping_brand:
            cost = parse_optional_float(shipping_cost, "international shipping cost")
            shipping = ShippingDefaults(
                enabled=shipping_enabled,
                country=shipping_country.strip() or settings.default_shipping_country,
                cost=settings.default_international_shipping_cost if cost is None else cost,
            )

        records = map_rows(
            session.sheet.rows,
            session.mapping,
            session.sheet.headers,
            brand=brand_value,
            shipping=shipping,
            international_brand=settings.international_shipping_brand,
            day_first=settings.date_day_first,
        )
        report = check_duplicates(db, records, brand=brand_value)
        result = execute_import(db, records, report, brand=brand_value, skip_duplicates=skip_duplicates)
    except HTTPException as exc:
        db.rollback()
        return render_import_page(request, brand_value, error=str(exc.detail), status_code=400)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Unexpected database error during campaign import")
        return render_import_page(request, brand_value, error="Unexpected import database error.", status_code=500)

    upload_sessions.discard(token)
    result["filename"] = session.sheet.filename
    return render_import_page(request, brand_value, result=result)


# ---------------------------------------------------------------------------
# Export and JSON APIs
# ---------------------------------------------------------------------------

@app.get("/export/campaigns.xlsx")
def export_xlsx(brand: str = Query(""), db: Session = Depends(get_db)):
    brand_value = resolve_brand(brand)
    content = export_campaigns_xlsx(load_campaign_frame(db, brand_value))
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="campaigns_{brand_value}.xlsx"'},
    )


@app.get("/export/campaigns.csv")
def export_csv(brand: str = Query(""), db: Session = Depends(get_db)):
    brand_value = resolve_brand(brand)
    content = export_campaigns_csv(load_campaign_frame(db, brand_value))
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="campaigns_{brand_value}.csv"'},
    )


@app.get("/api/influencers/ranking")
def api_ranking(brand: str = Query(""), db: Session = Depends(get_db)):
    return {"items": json_safe(load_ranking(db, resolve_brand(brand)))}


@app.get("/api/campaigns")
def api_campaigns(
    brand: str = Query(""),
    status: str = Query(""),
    item_code: str = Query(""),
    q: str = Query(""),
    db: Session = Depends(get_db),
):
    frame = load_campaign_frame(
        db, resolve_brand(brand), status=status.strip().lower(), item_code=item_code.strip(), query=q
    )
    items = frame.astype(object).where(frame.notna(), None).to_dict(orient="records")
    return {"items": json_safe(items)}
