"""
日记接口
所有接口都需要Bearer令牌，只能操作当前用户自己的日记
"""

from typing import List
from fastapi import APIRouter, Depends

from ediary.api.deps import get_current_user, get_diary_service
from ediary.models.diary import (
    DiaryRecord, DiaryCreate, DiaryUpdate, DiaryActionResponse, MessageResponse,
)
from ediary.models.stats import DiaryStats
from ediary.models.user import User
from ediary.services.diary_service import DiaryService

router = APIRouter(prefix="/api/diaries", tags=["diaries"])


@router.get("", response_model=List[DiaryRecord])
async def list_diaries(current_user: User = Depends(get_current_user),
                       service: DiaryService = Depends(get_diary_service)):
    """未删除的日记，最新的在前"""
    return service.list_diaries(current_user.id)


@router.get("/trash", response_model=List[DiaryRecord])
async def list_trash(current_user: User = Depends(get_current_user),
                     service: DiaryService = Depends(get_diary_service)):
    """回收站，最近删除的在前"""
    return service.list_trash(current_user.id)


@router.get("/stats", response_model=DiaryStats)
async def get_stats(current_user: User = Depends(get_current_user),
                    service: DiaryService = Depends(get_diary_service)):
    return service.get_stats(current_user.id)


@router.post("", status_code=201, response_model=DiaryRecord)
async def create_diary(payload: DiaryCreate,
                       current_user: User = Depends(get_current_user),
                       service: DiaryService = Depends(get_diary_service)):
    return service.create_diary(current_user.id, payload)


@router.get("/{diary_id}", response_model=DiaryRecord)
async def get_diary(diary_id: str,
                    current_user: User = Depends(get_current_user),
                    service: DiaryService = Depends(get_diary_service)):
    return service.get_diary(current_user.id, diary_id)


@router.put("/{diary_id}", response_model=DiaryRecord)
async def update_diary(diary_id: str, payload: DiaryUpdate,
                       current_user: User = Depends(get_current_user),
                       service: DiaryService = Depends(get_diary_service)):
    return service.update_diary(current_user.id, diary_id, payload)


@router.delete("/{diary_id}", response_model=DiaryActionResponse)
async def delete_diary(diary_id: str,
                       current_user: User = Depends(get_current_user),
                       service: DiaryService = Depends(get_diary_service)):
    """软删除：移入回收站"""
    diary = service.soft_delete(current_user.id, diary_id)
    return DiaryActionResponse(message="Diary entry moved to trash", diary=diary)


@router.put("/{diary_id}/restore", response_model=DiaryActionResponse)
async def restore_diary(diary_id: str,
                        current_user: User = Depends(get_current_user),
                        service: DiaryService = Depends(get_diary_service)):
    diary = service.restore(current_user.id, diary_id)
    return DiaryActionResponse(message="Diary entry restored", diary=diary)


@router.delete("/{diary_id}/permanent", response_model=MessageResponse)
async def permanent_delete_diary(diary_id: str,
                                 current_user: User = Depends(get_current_user),
                                 service: DiaryService = Depends(get_diary_service)):
    """彻底删除，只允许删除回收站中的日记"""
    service.permanent_delete(current_user.id, diary_id)
    return MessageResponse(message="Diary entry permanently deleted")
