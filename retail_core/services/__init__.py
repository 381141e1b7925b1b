from retail_core.services.pricing_engine import PricingEngine, LinePricing, DocumentTotals
from retail_core.services.inventory_ledger import InventoryLedger
from retail_core.services.document_number_service import DocumentNumberAllocator
from retail_core.services.sale_service import SaleService
from retail_core.services.return_service import ReturnService, ReturnableLine
from retail_core.services.payment_reconciliation_service import PaymentReconciliationService, PaymentResult
