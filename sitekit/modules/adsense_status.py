"""
AdSense account status detection.

Walks the user's AdSense accounts, alerts, ad clients and URL channels to
decide which setup state the site is in, saves what it learns (client ID,
setup completion, status) and returns a description of the state.

Statuses
--------
no-account                      no AdSense account for this Google user
no-account-tag-found            no account, but the site carries an AdSense tag
account-disapproved             account (or its AFC client) is disapproved
account-pending-review          no URL channel matches the site
ads-display-pending             account or domain still under review
account-required-action         account exists but the ad code is unavailable
account-connected               matched domain, setup complete
account-connected-nonmatching   matched domain, but the site's tag is another client's
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from sitekit.exceptions import SiteKitError

logger = logging.getLogger(__name__)

SIGNUP_URL = "https://www.google.com/adsense/signup?source=site-kit"
ADMOB_URL = "https://google.com/admob"

ACCOUNT_PENDING_REVIEW = "accountPendingReview"


def send_tracking_event(category: str, name: str, label: Optional[str] = None) -> None:
    logger.info("Tracking event category=%s name=%s label=%s", category, name, label or "")


class AccountStatusDetector:
    def __init__(self, module, status_callback: Optional[Callable[[str], None]] = None):
        self.module = module
        self.context = module.context
        self.status_callback = status_callback or (lambda message: logger.debug("AdSense status: %s", message))

    def _fetch(self, datapoint: str, data: Optional[Dict[str, Any]] = None) -> Tuple[Any, Optional[SiteKitError]]:
        try:
            return self.module.get_data(datapoint, data), None
        except SiteKitError as e:
            logger.debug("AdSense %s failed: %s (%s)", datapoint, e.code, e.reason)
            return None, e

    def _save(self, datapoint: str, data: Dict[str, Any]) -> None:
        try:
            self.module.set_data(datapoint, data)
        except SiteKitError:
            logger.warning("Saving AdSense %s failed", datapoint, exc_info=True)

    def detect(self, existing_tag: Optional[str] = None) -> Dict[str, Any]:
        try:
            return self._detect(existing_tag)
        except Exception as e:
            logger.exception("AdSense account status detection failed")
            return {"error": getattr(e, "code", type(e).__name__), "message": str(e)}

    def _detect(self, existing_tag: Optional[str]) -> Dict[str, Any]:
        state: Dict[str, Any] = {
            "accountStatus": "",
            "statusHeadline": "",
            "statusMessage": "",
            "issue": "",
            "profile": False,
            "icon": "",
            "ctaLink": "",
            "ctaLinkText": "",
            "ctaTarget": False,
            "buttonLink": False,
            "footerText": "",
            "footerAppendedText": "",
            "footerCTA": "",
            "footerCTALink": "",
            "continueAction": False,
            "accountTagMatch": False,
            "clientID": False,
            "switchLabel": "",
            "switchOffMessage": "",
            "switchOnMessage": "",
            "tracking": False,
        }
        reauth_url = self.context.get_reauth_url("adsense", True)

        self.status_callback("Locating accounts…")
        accounts, accounts_error = self._fetch("accounts")
        account_id = accounts[0]["id"] if accounts else None

        if accounts_error is not None or not account_id:
            reason = accounts_error.reason if accounts_error is not None else None
            if reason == "disapprovedAccount":
                state.update(
                    accountStatus="account-disapproved",
                    statusHeadline="Your site isn’t ready to show ads yet",
                    statusMessage="You need to fix some things before we can connect Site Kit to your AdSense account.",
                    ctaLinkText="Go to AdSense to find out how to fix the issue",
                    ctaLink="https://www.google.com/adsense/",
                )
            elif existing_tag:
                state.update(
                    accountStatus="no-account-tag-found",
                    statusHeadline="Looks like you’re already using AdSense",
                    statusMessage="We’ve found some AdSense code on your site, but it’s not linked to this Google account.",
                    ctaLinkText="Switch Google account",
                    ctaLink=reauth_url,
                    buttonLink=True,
                    switchLabel="Let Site Kit place code on your site to get your site approved",
                    continueAction={
                        "statusHeadline": "Create a new AdSense account",
                        "statusMessage": (
                            "Site Kit will place additional AdSense code on every page across your site after you "
                            "create an account. This means Google will automatically place ads for you in all the best places."
                        ),
                        "notice": "We recommend you remove the old AdSense code from this site.",
                        "icon": "warning",
                        "continueText": "Continue anyway",
                        "ctaLinkText": "Create AdSense Account",
                        "ctaLink": SIGNUP_URL,
                        "ctaTarget": "_blank",
                        "continueAction": False,
                    },
                )
            else:
                state.update(
                    accountStatus="no-account",
                    statusHeadline="Create your AdSense account",
                    statusMessage=(
                        "Site Kit will place AdSense code on every page across your site. "
                        "This means Google will automatically place ads for you in all the best places."
                    ),
                    profile=True,
                    ctaLinkText="Create AdSense Account",
                    ctaLink=SIGNUP_URL,
                    ctaTarget="_blank",
                    buttonLink=True,
                    footerText="Already have an AdSense account?",
                    footerAppendedText="to connect to it",
                    footerCTA="Switch Google account",
                    footerCTALink=reauth_url,
                    tracking={"eventCategory": "adsense_setup", "eventName": "create_adsense_account"},
                )
        else:
            if len(accounts) > 1:
                account_id = self._match_account(accounts, account_id, state)
            self._check_account(account_id, existing_tag, state)

        self._save("account-status", {"accountStatus": state["accountStatus"]})

        return {
            **state,
            "accounts": accounts or [],
            "accountURL": f"https://www.google.com/adsense/new/{account_id}/home" if account_id else "",
            "existingTag": existing_tag or False,
            "setupComplete": False,
            "error": False,
        }

    def _match_account(self, accounts: List[Dict[str, Any]], account_id: str, state: Dict[str, Any]) -> str:
        """Pick the account whose URL channels contain the site's hostname."""
        self.status_callback("Searching for domain…")
        hostname = urlparse(self.context.reference_site_url).hostname
        for account in accounts:
            channels, _ = self._fetch("urlchannels", {"clientID": f"ca-{account['id']}"})
            matches = [c for c in channels or [] if c.get("urlPattern") == hostname]
            if not matches:
                state.update(accountStatus="account-pending-review", issue=ACCOUNT_PENDING_REVIEW)
                send_tracking_event(
                    "adsense_setup", "adsense_account_pending", "accountPendingReview status account-pending-review"
                )
            else:
                account_id = account["id"]
                send_tracking_event("adsense_setup", "adsense_account_detected")
        return account_id

    def _check_account(self, account_id: str, existing_tag: Optional[str], state: Dict[str, Any]) -> None:
        self.status_callback("Account found, checking account status…")
        alerts, alerts_error = self._fetch("alerts", {"accountID": account_id})

        if any(a.get("type") == "GRAYLISTED_PUBLISHER" for a in alerts or []):
            self._pending_display(state)
            return

        clients, clients_error = self._fetch("clients", {"accountID": account_id})
        item = next((c for c in clients or [] if c.get("productCode") == "AFC"), None)
        if item:
            state["clientID"] = item["id"]
            # Saved right away so the tag can verify the site.
            self._save("client-id", {"clientID": item["id"]})

        if alerts_error is not None:
            if alerts_error.reason == ACCOUNT_PENDING_REVIEW:
                self._pending_display(state)
            return

        self.status_callback("Looking for AdSense client…")
        if clients_error is not None:
            state.update(accountStatus="account-required-action", issue="accountRequiredAction")
            send_tracking_event("adsense_setup", "adsense_required_action", "accountRequiredAction status")
            return

        if not item:
            state.update(
                accountStatus="account-disapproved",
                issue="There is an AdSense account, but the AFC account is disapproved",
                icon="error",
                statusHeadline="Create Account",
                statusMessage="Create an AdMob account, then open AdSense and try to upgrade.",
                ctaLinkText="Create an AdMob Account",
                ctaLink=ADMOB_URL,
            )
            return

        self._check_domain(item["id"], existing_tag, state)

    def _check_domain(self, client_id: str, existing_tag: Optional[str], state: Dict[str, Any]) -> None:
        self.status_callback("Looking for site domain…")
        channels, channels_error = self._fetch("urlchannels", {"clientID": client_id})
        site_url = self.context.reference_site_url
        matches = [
            c for c in channels or []
            if c.get("urlPattern") and site_url.find(c["urlPattern"]) > 0
        ]
        module_url = self.context.get_admin_url("googlesitekit-module-adsense")

        if channels_error is None and not channels:
            # A new account with domain addition still pending.
            self._pending_display(state)
        elif not matches:
            state.update(accountStatus="account-pending-review", issue=ACCOUNT_PENDING_REVIEW)
            send_tracking_event(
                "adsense_setup", "adsense_account_pending", "accountPendingReview status account-pending-review"
            )
        elif existing_tag and existing_tag == client_id:
            state.update(
                accountStatus="account-connected",
                issue=False,
                icon="alert",
                statusHeadline="Site Kit will place AdSense code to your site",
                statusMessage="This means Google will automatically place ads for you in all the best places.",
                ctaLinkText="Continue",
                ctaLink=module_url,
                buttonLink=True,
                accountTagMatch=True,
                switchLabel="Let Site Kit place code on your site",
                switchOffMessage=(
                    "If you don’t let Site Kit place the code you may not get the best ads experience. "
                    "You can set this up later on the Site Kit settings page."
                ),
                switchOnMessage=(
                    "If you’ve already set up ads on your site, it may change how they appear. "
                    "You can customize this later in AdSense."
                ),
            )
            send_tracking_event("adsense_setup", "adsense_account_connected", "existing_matching_tag")
        elif existing_tag:
            state.update(
                accountStatus="account-connected-nonmatching",
                issue=False,
                icon=False,
                statusHeadline="Your site has code from another AdSense account",
                statusMessage="We’ve found some AdSense code on your site, but it’s not linked to this AdSense account.",
                ctaLinkText="Switch Google account",
                ctaLink=self.context.get_reauth_url("adsense", True),
                buttonLink=True,
                continueAction={
                    "accountStatus": "account-connected",
                    "continueText": "Continue anyway",
                    "statusHeadline": "Site Kit will place AdSense code on your site",
                    "statusMessage": (
                        "To connect your site to your AdSense account, Site Kit will place AdSense code on your site. "
                        "For a better ads experience, you should remove AdSense code that’s not linked to this AdSense account."
                    ),
                    "profile": True,
                    "ctaLink": module_url,
                    "ctaLinkText": "Continue",
                    "continueAction": False,
                    "switchLabel": "Let Site Kit place code on your site",
                    "switchOffMessage": "You can let Site Kit do this later.",
                },
            )
            send_tracking_event("adsense_setup", "adsense_account_connected", "existing_non_matching_tag")
        else:
            state.update(
                accountStatus="account-connected",
                issue=False,
                icon=False,
                statusHeadline="Looks like you’re already using AdSense",
                statusMessage=(
                    "Site Kit will place AdSense code on your site to connect your site to AdSense and help you get "
                    "the most out of ads. This means Google will automatically place ads for you in all the best places."
                ),
                ctaLinkText="Continue",
                ctaLink=module_url,
                buttonLink=True,
                tracking={"eventCategory": "adsense_setup", "eventName": "complete_adsense_setup"},
                switchLabel="Let Site Kit place code on your site to get your site approved",
                switchOffMessage=(
                    "If you’ve already got some AdSense code on your site, we recommend you use Site Kit "
                    "to place code to get the most out of AdSense."
                ),
            )
            self.status_callback("Connecting…")
            send_tracking_event("adsense_setup", "adsense_account_connected")
            self._save("setup-complete", {"clientID": client_id})

    @staticmethod
    def _pending_display(state: Dict[str, Any]) -> None:
        state.update(accountStatus="ads-display-pending", issue=ACCOUNT_PENDING_REVIEW)
        send_tracking_event(
            "adsense_setup", "adsense_account_pending", "accountPendingReview status ads-display-pending"
        )
