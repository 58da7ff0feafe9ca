"""
Favorite recipient API endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bankcore.core.exceptions import Conflict, Forbidden, InvalidRequestError, NotFound
from bankcore.core.formatting import normalize_account_number
from bankcore.core.security import get_current_account_id
from bankcore.database import get_db
from bankcore.models.favorite import Favorite
from bankcore.schemas.favorite import FavoriteRequest, FavoriteUpdateRequest, FavoriteResponse
from bankcore.services import ledger

router = APIRouter(prefix="/favorites", tags=["Favorites"])


def _to_response(db: Session, favorite: Favorite) -> FavoriteResponse:
    # Resolved on every read: the target may have been closed since it was saved
    target = ledger.find_account_by_number(db, favorite.account_number)
    return FavoriteResponse(
        favorite_id=favorite.id,
        account_number=favorite.account_number,
        account_owner_name=target.owner_name if target is not None else None,
        nickname=favorite.nickname,
        memo=favorite.memo,
        created_at=favorite.created_at,
    )


def _get_owned(db: Session, favorite_id: int, account_id: int) -> Favorite:
    favorite = db.get(Favorite, favorite_id)
    if favorite is None:
        raise NotFound(f"Favorite {favorite_id} not found")
    if favorite.account_id != account_id:
        raise Forbidden("Favorite belongs to another account")
    return favorite


@router.post("", response_model=FavoriteResponse, status_code=status.HTTP_201_CREATED)
def create_favorite(
    request: FavoriteRequest,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Save a recipient.

    - **accountNumber**: Existing account, not the caller's own
    - **nickname**: Display name
    - **memo**: Optional note
    """
    number = normalize_account_number(request.account_number)
    target = ledger.get_account_by_number(db, number)
    if target.id == account_id:
        raise InvalidRequestError("Cannot add your own account to favorites")

    existing = db.query(Favorite).filter(
        Favorite.account_id == account_id,
        Favorite.account_number == number
    ).first()
    if existing:
        raise Conflict("Account is already in favorites")

    favorite = Favorite(
        account_id=account_id,
        account_number=number,
        nickname=request.nickname,
        memo=request.memo,
    )
    db.add(favorite)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Account is already in favorites")
    db.refresh(favorite)
    return _to_response(db, favorite)


@router.get("", response_model=List[FavoriteResponse])
def list_favorites(
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    favorites = db.query(Favorite).filter(
        Favorite.account_id == account_id
    ).order_by(Favorite.created_at.desc(), Favorite.id.desc()).all()
    return [_to_response(db, favorite) for favorite in favorites]


@router.get("/{favorite_id}", response_model=FavoriteResponse)
def get_favorite(
    favorite_id: int,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    return _to_response(db, _get_owned(db, favorite_id, account_id))


@router.patch("/{favorite_id}", response_model=FavoriteResponse)
def update_favorite(
    favorite_id: int,
    request: FavoriteUpdateRequest,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    """
    Change the nickname and/or memo. Omitted fields are left unchanged.
    """
    favorite = _get_owned(db, favorite_id, account_id)
    changes = request.model_dump(exclude_unset=True)
    if "nickname" in changes and changes["nickname"] is None:
        raise InvalidRequestError("nickname cannot be empty")
    for field, value in changes.items():
        setattr(favorite, field, value)
    db.commit()
    db.refresh(favorite)
    return _to_response(db, favorite)


@router.delete("/{favorite_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_favorite(
    favorite_id: int,
    account_id: int = Depends(get_current_account_id),
    db: Session = Depends(get_db)
):
    favorite = _get_owned(db, favorite_id, account_id)
    db.delete(favorite)
    db.commit()
    return None
