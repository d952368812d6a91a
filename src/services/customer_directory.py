"""
Resolution of chat users to tenant customer records.

Customer management lives outside the booking flow; the flow only needs a
stable customer id for the user who is booking.
"""
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from loguru import logger

from models.database import ChatCustomerLink
from error_handling.exceptions import DatabaseError


class CustomerDirectory:
    """
    Maps (tenant, chat user) to a customer id, creating the link on first use.
    """

    def __init__(self, session: Session):
        """
        Args:
            session: SQLAlchemy database session
        """
        self.session = session

    def get_or_create_customer_id(self, tenant_id: str, user_id: str) -> str:
        """
        Return the customer id linked to a chat user, creating one if needed.

        Args:
            tenant_id: Tenant identifier
            user_id: Chat platform user identifier

        Returns:
            Customer id

        Raises:
            DatabaseError: If the link cannot be read or created
        """
        try:
            link = self._find(tenant_id, user_id)
            if link is not None:
                return link.customer_id

            link = ChatCustomerLink(tenant_id=tenant_id, chat_user_id=user_id)
            self.session.add(link)
            try:
                self.session.commit()
            except IntegrityError:
                # Another event for the same user created the link first
                self.session.rollback()
                link = self._find(tenant_id, user_id)
                if link is None:
                    raise
                return link.customer_id

            logger.info(f"Created customer {link.customer_id} for tenant={tenant_id} user={user_id}")
            return link.customer_id

        except SQLAlchemyError as e:
            self.session.rollback()
            error = DatabaseError(
                f"Failed to resolve customer for tenant={tenant_id} user={user_id}: {e}",
                operation="get_or_create_customer",
                original_error=e
            )
            error.user_message = "Sorry, we could not create your customer profile. Please try again later."
            raise error from e

    def _find(self, tenant_id: str, user_id: str):
        return self.session.query(ChatCustomerLink).filter(
            and_(
                ChatCustomerLink.tenant_id == tenant_id,
                ChatCustomerLink.chat_user_id == user_id
            )
        ).first()
