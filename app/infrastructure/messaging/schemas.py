"""
Wire schemas for queue notifications stored in the outbox.

One pydantic model per notification kind, discriminated by the ``kind``
literal so a stored payload can be parsed back without knowing its type.
"""

from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, TypeAdapter


class NotificationBase(BaseModel):
    """
    Envelope shared by every outbox message.
    """

    model_config = ConfigDict(frozen=True)

    resource_id: UUID = Field(description="Resource whose queue changed")
    occurred_at: AwareDatetime = Field(description="When the change happened")
    version: int = Field(ge=1, description="Queue version after the change")


class ReservationQueuedMessage(NotificationBase):
    kind: Literal["ReservationQueued"] = "ReservationQueued"
    reservation_id: UUID
    requester_id: UUID
    priority: int = Field(ge=0, description="0=staff, 1=vip, 2=regular")
    wait_deadline: datetime


class QueueHeadChangedMessage(NotificationBase):
    kind: Literal["QueueHeadChanged"] = "QueueHeadChanged"
    head_reservation_id: UUID


class LoanActivationAuthorizedMessage(NotificationBase):
    kind: Literal["LoanActivationAuthorized"] = "LoanActivationAuthorized"
    reservation_id: UUID
    requester_id: UUID


class WaitDeadlineExpiredFromQueueMessage(NotificationBase):
    kind: Literal["WaitDeadlineExpiredFromQueue"] = "WaitDeadlineExpiredFromQueue"
    reservation_id: UUID
    requester_id: UUID
    wait_deadline: datetime


class ReservationRemovedFromQueueMessage(NotificationBase):
    kind: Literal["ReservationRemovedFromQueue"] = "ReservationRemovedFromQueue"
    reservation_id: UUID
    requester_id: UUID
    reason: str
    removed_by: str
    note: str | None = None


class ActiveLoanClearedMessage(NotificationBase):
    kind: Literal["ActiveLoanCleared"] = "ActiveLoanCleared"
    reservation_id: UUID


NotificationMessage = Annotated[
    Union[
        ReservationQueuedMessage,
        QueueHeadChangedMessage,
        LoanActivationAuthorizedMessage,
        WaitDeadlineExpiredFromQueueMessage,
        ReservationRemovedFromQueueMessage,
        ActiveLoanClearedMessage,
    ],
    Field(discriminator="kind"),
]

notification_message_adapter: TypeAdapter[NotificationMessage] = TypeAdapter(NotificationMessage)


class OutboxRecord(BaseModel):
    """
    A stored outbox row together with its parsed message.
    """

    id: int = Field(description="Monotonic outbox position")
    message: NotificationMessage
    published_at: AwareDatetime | None = Field(
        default=None, description="When the message was marked delivered"
    )
