from fastapi import FastAPI, Request
from starlette.responses import Response


# Applied to every response.
BASE_HEADERS = {
    "X-Robots-Tag": "noindex, nofollow, noarchive",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "same-origin",
    "Permissions-Policy": "camera=(), geolocation=(), microphone=(), clipboard-write=(self)",
}

# Pages and exports carry submitters' names and phone numbers.
PRIVATE_PREFIXES = ("/dashboard", "/login")


def is_private_path(path: str) -> bool:
    return any(path == prefix or path.startswith(f"{prefix}/") for prefix in PRIVATE_PREFIXES)


def install_security_headers(app: FastAPI) -> None:
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        for name, value in BASE_HEADERS.items():
            response.headers.setdefault(name, value)
        if is_private_path(request.url.path):
            response.headers["Cache-Control"] = "no-store"
        return response
