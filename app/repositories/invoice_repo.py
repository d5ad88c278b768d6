# app/repositories/invoice_repo.py
import uuid

from sqlmodel import Session, select

from app.models.invoice import Invoice, InvoiceItem


class InvoiceRepository:
    """
    Data access layer for invoices and invoice_items.

    Like OrderRepository, nothing here commits.
    """

    def get_by_id(self, session: Session, invoice_doc_id: uuid.UUID) -> Invoice | None:
        return session.get(Invoice, invoice_doc_id)

    def get_by_invoice_id(self, session: Session, invoice_id: str) -> Invoice | None:
        stmt = select(Invoice).where(Invoice.invoice_id == invoice_id)
        return session.exec(stmt).first()

    def get_by_order_id(self, session: Session, order_id: str) -> Invoice | None:
        stmt = select(Invoice).where(Invoice.order_id == order_id)
        return session.exec(stmt).first()

    def invoice_id_exists(self, session: Session, invoice_id: str) -> bool:
        return self.get_by_invoice_id(session, invoice_id) is not None

    def list_for_customer(
        self,
        session: Session,
        customer_uid: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Invoice]:
        stmt = (
            select(Invoice)
            .where(Invoice.customer_uid == customer_uid)
            .order_by(Invoice.generated_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def list_all(self, session: Session, skip: int = 0, limit: int = 50) -> list[Invoice]:
        stmt = select(Invoice).order_by(Invoice.generated_at.desc()).offset(skip).limit(limit)
        return list(session.exec(stmt).all())

    def stat_rows(self, session: Session) -> list[tuple]:
        """(final_amount, generated_at) for every invoice."""
        stmt = select(Invoice.final_amount, Invoice.generated_at)
        return list(session.exec(stmt).all())

    def create_invoice(
        self,
        session: Session,
        invoice: Invoice,
        items: list[InvoiceItem],
    ) -> Invoice:
        session.add(invoice)
        session.flush()
        for item in items:
            item.invoice_id = invoice.id
        session.add_all(items)
        session.flush()
        return invoice

    def update_invoice(self, session: Session, invoice: Invoice) -> Invoice:
        session.add(invoice)
        session.flush()
        return invoice

    def list_items_for_invoice(
        self,
        session: Session,
        invoice_doc_id: uuid.UUID,
    ) -> list[InvoiceItem]:
        stmt = select(InvoiceItem).where(InvoiceItem.invoice_id == invoice_doc_id)
        return list(session.exec(stmt).all())
