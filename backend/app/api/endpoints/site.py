# backend/app/api/endpoints/site.py
"""
站点源的应用外壳资源

后台 Worker 安装时从这里预缓存页面、图标和 Web 应用清单，离线时用它们回退。
"""
import os
from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse, HTMLResponse

from app.core.config import settings

router = APIRouter()

PAGES: Dict[str, str] = {
    "/": "Inicio",
    "/cursos": "Cursos",
    "/preguntas": "Preguntas frecuentes",
    "/contacto": "Contacto",
}


def render_page(title: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="es">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title} | {settings.PROJECT_NAME}</title>
  <link rel="manifest" href="/manifest.json">
</head>
<body>
  <header><img src="/images/adultech-logo.png" alt="{settings.PROJECT_NAME}"></header>
  <main><h1>{title}</h1></main>
</body>
</html>
"""


def _static_file(relative_path: str, media_type: str) -> FileResponse:
    path = os.path.join(settings.STATIC_DIR, relative_path)
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail=f"Static file not found: {relative_path}")
    return FileResponse(path, media_type=media_type)


@router.get("/", response_class=HTMLResponse)
def home_page():
    return render_page(PAGES["/"])


@router.get("/cursos", response_class=HTMLResponse)
def courses_page():
    return render_page(PAGES["/cursos"])


@router.get("/preguntas", response_class=HTMLResponse)
def questions_page():
    return render_page(PAGES["/preguntas"])


@router.get("/contacto", response_class=HTMLResponse)
def contact_page():
    return render_page(PAGES["/contacto"])


@router.get("/manifest.json")
def web_manifest() -> Dict[str, Any]:
    """Web 应用清单，允许把站点安装到主屏幕"""
    return {
        "name": settings.PROJECT_NAME,
        "short_name": "AdulTech",
        "description": settings.PROJECT_DESCRIPTION,
        "start_url": settings.OFFLINE_HOME_PATH,
        "display": "standalone",
        "background_color": "#ffffff",
        "theme_color": "#1d4ed8",
        "lang": "es",
        "icons": [
            {"src": "/images/adultech-logo.png", "sizes": "192x192", "type": "image/png"},
        ],
    }


@router.get("/placeholder.svg")
def placeholder_image():
    return _static_file("placeholder.svg", "image/svg+xml")


@router.get("/images/adultech-logo.png")
def logo_image():
    return _static_file(os.path.join("images", "adultech-logo.png"), "image/png")
