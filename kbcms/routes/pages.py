from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from kbcms.db.database import get_db
from kbcms.services import dashboard
from kbcms.services.auth import AuthService
from kbcms.services.text import highlight_terms

router = APIRouter()
templates = Jinja2Templates(directory=Path(__file__).parent.parent / "templates")


def format_date(value: Optional[datetime], fmt: str = "%b %d, %Y") -> str:
    return value.strftime(fmt) if value else ""


templates.env.filters["highlight"] = highlight_terms
templates.env.filters["date"] = format_date


def render(
    request: Request,
    name: str,
    context: Optional[dict] = None,
    auth: Optional[AuthService] = None,
    status_code: int = 200,
):
    """Render a page with flash messages and, for forms, the CSRF token."""
    settings = request.app.state.settings
    page = {
        "site_name": settings.site_name,
        "site_url": settings.site_url,
        "flashes": request.state.session.pop_flashes(),
        "current_user": None,
    }
    if auth is not None:
        page["current_user"] = auth.current_user()
        page["csrf_field"] = settings.csrf_token_name
        page["csrf_token"] = auth.issue_csrf_token()
    page.update(context or {})
    return templates.TemplateResponse(request, name, page, status_code=status_code)


def parse_id(value: Optional[str]) -> Optional[int]:
    """Optional integer id from a query string value; blanks and junk are None."""
    try:
        number = int(value) if value else None
    except ValueError:
        return None
    return number if number and number > 0 else None


@router.get("/")
async def index(request: Request, db: Session = Depends(get_db)):
    """Home page: featured, recent and popular articles plus categories."""
    return render(request, "index.html", dashboard.home_page_data(db))
