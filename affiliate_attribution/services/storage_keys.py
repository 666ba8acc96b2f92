"""Persisted key names.

These are shared with earlier SDK releases, so existing installs keep their
attribution after upgrading. Do not rename.
"""

DEVICE_ID = "InsertAffiliate_ShortUniqueDeviceID"
IDENTIFIER = "InsertAffiliate_Identifier"
STORED_DATE = "InsertAffiliate_StoredDate"
OFFER_CODE = "InsertAffiliate_OfferCode"
APP_ACCOUNT_TOKEN = "InsertAffiliate_AppAccountToken"
AFFILIATE_NAME = "InsertAffiliate_AffiliateName"
AFFILIATE_SHORT_CODE = "InsertAffiliate_AffiliateShortCode"
COMPANY_NAME = "InsertAffiliate_CompanyName"
DEEP_LINK_DATA = "InsertAffiliate_DeepLinkData"
