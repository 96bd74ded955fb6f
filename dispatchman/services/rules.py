"""
Billing rules — price and honorarium per (payer, plan?, product).
"""

import logging

from django.db import transaction

from dispatchman.exceptions import DispatchError
from dispatchman.models.billing import BillingRule
from dispatchman.models.enums import Module
from dispatchman.models.reference import Payer, PayerPlan, Product
from dispatchman.services.base import audit, get_owned, require_module, to_decimal

logger = logging.getLogger('dispatchman')


class BillingRules:
    """Rule maintenance and resolution."""

    @classmethod
    def upsert_billing_rule(cls, tenant, payer, product, unit_price, honorarium=0, plan=None,
                            actor=None) -> BillingRule:
        """
        Create or replace the rule for (payer, plan, product).

        plan=None writes the payer-general rule.

        Raises:
            DispatchError('INVALID_UNIT_PRICE' | 'INVALID_HONORARIUM'): Negative or not finite
            DispatchError('PLAN_PAYER_MISMATCH'): Plan of another payer
        """
        require_module(tenant, Module.BILLING)
        unit_price = to_decimal(unit_price, 'INVALID_UNIT_PRICE')
        honorarium = to_decimal(honorarium, 'INVALID_HONORARIUM')

        with transaction.atomic():
            payer = get_owned(Payer, tenant, payer, 'PAYER_NOT_FOUND')
            product = get_owned(Product, tenant, product, 'PRODUCT_NOT_FOUND')
            plan = cls._plan_of(tenant, payer, plan)

            rule, created = BillingRule.objects.select_for_update().update_or_create(
                tenant=tenant,
                payer=payer,
                plan=plan,
                product=product,
                defaults={'unit_price': unit_price, 'honorarium': honorarium},
            )
            audit(tenant, actor, 'billing_rule.upserted', rule,
                  created=created, unit_price=unit_price, honorarium=honorarium)

        logger.info(
            "billing_rule.upserted",
            extra={
                "tenant_id": tenant.pk,
                "rule_id": rule.pk,
                "unit_price": str(unit_price),
                "honorarium": str(honorarium),
                "created": created,
            },
        )
        return rule

    @classmethod
    def update_billing_rule(cls, tenant, rule, unit_price=None, honorarium=None, actor=None) -> BillingRule:
        """Change price and/or honorarium of an existing rule."""
        require_module(tenant, Module.BILLING)
        fields = []

        with transaction.atomic():
            rule = get_owned(BillingRule, tenant, rule, 'BILLING_RULE_NOT_FOUND', for_update=True)
            if unit_price is not None:
                rule.unit_price = to_decimal(unit_price, 'INVALID_UNIT_PRICE')
                fields.append('unit_price')
            if honorarium is not None:
                rule.honorarium = to_decimal(honorarium, 'INVALID_HONORARIUM')
                fields.append('honorarium')
            if fields:
                rule.save(update_fields=fields + ['updated_at'])
                audit(tenant, actor, 'billing_rule.updated', rule,
                      unit_price=rule.unit_price, honorarium=rule.honorarium)
        return rule

    @classmethod
    def resolve_rule(cls, tenant, payer, product, plan=None) -> BillingRule | None:
        """
        Rule for an invoice line: exact plan first, then the payer-general one.

        Returns None when neither exists.
        """
        qs = BillingRule.objects.for_tenant(tenant).filter(payer=payer, product=product)
        if plan is not None:
            rule = qs.filter(plan=plan).first()
            if rule is not None:
                return rule
        return qs.filter(plan__isnull=True).first()

    @classmethod
    def _plan_of(cls, tenant, payer, plan):
        if plan is None:
            return None
        plan = get_owned(PayerPlan, tenant, plan, 'PLAN_NOT_FOUND')
        if plan.payer_id != payer.pk:
            raise DispatchError('PLAN_PAYER_MISMATCH', plan_id=plan.pk, payer_id=payer.pk)
        return plan
