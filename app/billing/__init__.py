"""
Billing app for Stripe hosted checkout.

This app handles:
- Checkout orders opened through Stripe Checkout (303 redirect)
- Billing portal access for returning customers
- Stripe webhook verification, storage and async processing
- Webhook delegation to subscribed listeners (fulfillment policy)

Related apps:
    - core: BaseModel, ServiceResult, BaseApplicationError
"""
