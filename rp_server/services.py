"""Business logic for the example relying party."""

from __future__ import annotations

from typing import List

from flask import abort
from sqlalchemy import select
from sqlalchemy.orm import Session

from u2fserver import Assertion, Client

from .models import Device, User


def ensure_user(session: Session, username: str) -> User:
    user = get_user(session, username)
    if user:
        return user
    user = User(username=username)
    session.add(user)
    session.flush()
    return user


def get_user(session: Session, username: str) -> User | None:
    return session.scalar(select(User).where(User.username == username))


def list_devices(session: Session, user: User) -> List[Device]:
    return list(
        session.scalars(select(Device).where(Device.user_id == user.id).order_by(Device.id))
    )


def select_device(session: Session, user: User, handle: str | None = None) -> Device:
    devices = list_devices(session, user)
    if handle is not None:
        devices = [device for device in devices if device.handle == handle]
    if not devices:
        abort(400, "No registered device")
    return devices[-1]


def store_device(session: Session, user: User, client: Client) -> Device:
    if session.scalar(select(Device).where(Device.handle == client.handle)):
        abort(400, "Device already registered")
    device = Device(
        user_id=user.id,
        handle=client.handle,
        public_key=client.public_key,
        counter=0,
    )
    session.add(device)
    session.flush()
    return device


def record_assertion(device: Device, assertion: Assertion) -> Device:
    """Accept an authentication only if the device counter moved forward."""
    if assertion.counter <= device.counter:
        abort(400, "Counter did not increase")
    device.counter = assertion.counter
    return device
