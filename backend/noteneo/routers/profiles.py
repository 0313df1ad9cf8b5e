from __future__ import annotations
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..schemas import LedgerRecord, ProfileView
from ..services import Services, get_services
from .auth import User, get_current_user

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/me/bookmarks", response_model=List[str])
async def my_bookmarks(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
	return await services.store.bookmarks(user.username)


@router.get("/me/following", response_model=List[str])
async def my_following(user: User = Depends(get_current_user), services: Services = Depends(get_services)):
	return await services.store.following_ids(user.username)


@router.get("/{user_id}", response_model=ProfileView)
async def get_profile(user_id: str, services: Services = Depends(get_services)):
	profile = await services.store.get_profile(user_id)
	if profile is None:
		raise HTTPException(status_code=404, detail="profile not found")
	return profile


@router.get("/{user_id}/ledger", response_model=List[LedgerRecord])
async def get_ledger(user_id: str, services: Services = Depends(get_services)):
	return await services.store.ledger_history(user_id)


@router.post("/{user_id}/follow")
async def follow(user_id: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)):
	if user_id == user.username:
		raise HTTPException(status_code=400, detail="cannot follow yourself")
	if await services.store.get_profile(user_id) is None:
		raise HTTPException(status_code=404, detail="profile not found")
	changed = await services.store.follow(user.username, user_id)
	return {"following": True, "changed": changed}


@router.delete("/{user_id}/follow")
async def unfollow(user_id: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)):
	changed = await services.store.unfollow(user.username, user_id)
	return {"following": False, "changed": changed}
