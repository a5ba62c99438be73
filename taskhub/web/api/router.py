from fastapi.routing import APIRouter

from taskhub.auth.endpoints import router as auth_router
from taskhub.project_manager import endpoints as projects
from taskhub.web.api import monitoring

api_router = APIRouter()
api_router.include_router(monitoring.router)
api_router.include_router(auth_router, tags=["authentication"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(projects.tasks_router, prefix="/tasks", tags=["tasks"])
