"""Сервис для работы с пользователями"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from database.models.user import User, GroupMember


async def get_or_create_user(
    session: AsyncSession,
    telegram_id: int,
    username: str = None,
    first_name: str = None,
    last_name: str = None,
    role: str = "bidder"
) -> User:
    """Получить или создать пользователя по Telegram id"""
    result = await session.execute(
        select(User).where(User.telegram_id == telegram_id)
    )
    user = result.scalar_one_or_none()

    if not user:
        user = User(
            telegram_id=telegram_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            role=role
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
    else:
        # Обновляем данные, если изменились
        if username != user.username or first_name != user.first_name or last_name != user.last_name:
            user.username = username
            user.first_name = first_name
            user.last_name = last_name
            await session.commit()

    return user


async def add_group_member(
    session: AsyncSession,
    group_id: int,
    user_id: int
) -> GroupMember:
    """Добавить пользователя в группу (для аукционов только для группы)"""
    result = await session.execute(
        select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id
        )
    )
    member = result.scalar_one_or_none()
    if member:
        return member

    member = GroupMember(group_id=group_id, user_id=user_id)
    session.add(member)
    await session.commit()
    await session.refresh(member)
    return member
