"""API routers."""

from coursegate.routers.course_access import router as course_access_router
from coursegate.routers.enrollments import router as enrollments_router
from coursegate.routers.health import router as health_router
from coursegate.routers.passkeys import router as passkeys_router
from coursegate.routers.payments import router as payments_router
from coursegate.routers.students import router as students_router

__all__ = [
    "course_access_router",
    "enrollments_router",
    "health_router",
    "passkeys_router",
    "payments_router",
    "students_router",
]
