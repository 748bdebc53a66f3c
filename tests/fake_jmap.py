"""In-memory JMAP server for tests, served through httpx.MockTransport."""

import copy
import json
from typing import Any

import httpx

from jmapmail.session import JmapSession

SESSION_URL = "https://jmap.test/jmap/session"
API_URL = "https://jmap.test/jmap/api/"
UPLOAD_URL = "https://jmap.test/jmap/upload/{accountId}/"
DOWNLOAD_URL = "https://jmap.test/jmap/download/{accountId}/{blobId}/{name}?type={type}"
ACCOUNT_ID = "u1"
TOKEN = "test-token"


def _addresses(value: Any) -> list[dict[str, str]]:
    if value is None:
        return []
    if isinstance(value, str):
        return [{"email": value}]
    if isinstance(value, tuple):
        name, email = value
        return [{"name": name, "email": email}]
    return list(value)


def _address_text(addresses: list[dict[str, str]]) -> str:
    return " ".join(f"{a.get('name', '')} {a.get('email', '')}" for a in addresses or []).lower()


def _pointer(value: Any, path: str) -> Any:
    for part in [p for p in path.split("/") if p]:
        value = value[int(part)] if isinstance(value, list) else value[part]
    return value


class FakeJmapServer:
    """A small but honest JMAP mail server.

    Supports the methods jmapmail issues, result references, creation
    references and blob upload/download. Every API request body is kept in
    ``requests`` for assertions.
    """

    def __init__(self):
        self.mailboxes: dict[str, dict[str, Any]] = {}
        self.emails: dict[str, dict[str, Any]] = {}
        self.identities: list[dict[str, Any]] = []
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.submissions: list[dict[str, Any]] = []
        self.requests: list[dict[str, Any]] = []
        self.fail_status: int | None = None
        self.method_errors: dict[str, str] = {}
        self.reject_submissions = False
        self.report_total = True
        self.upload_body: str | None = None
        self.mailbox_get_calls = 0
        self._counter = 0
        self._clock = 0

    # --- Fixtures ---

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}"

    def _timestamp(self) -> str:
        self._clock += 1
        return f"2024-01-01T00:{self._clock // 60:02d}:{self._clock % 60:02d}Z"

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def session(self) -> JmapSession:
        return JmapSession.from_dict(self.session_resource(), TOKEN)

    def session_resource(self) -> dict[str, Any]:
        return {
            "apiUrl": API_URL,
            "uploadUrl": UPLOAD_URL,
            "downloadUrl": DOWNLOAD_URL,
            "accounts": {ACCOUNT_ID: {"name": "user@example.com"}},
            "primaryAccounts": {"urn:ietf:params:jmap:mail": ACCOUNT_ID},
            "state": "s1",
        }

    def add_mailbox(
        self,
        mailbox_id: str,
        name: str,
        role: str | None = None,
        parent_id: str | None = None,
        sort_order: int = 0,
    ) -> dict[str, Any]:
        mailbox = {
            "id": mailbox_id,
            "name": name,
            "role": role,
            "parentId": parent_id,
            "sortOrder": sort_order,
            "isSubscribed": True,
        }
        self.mailboxes[mailbox_id] = mailbox
        return mailbox

    def add_standard_mailboxes(self) -> None:
        self.add_mailbox("mb-inbox", "Inbox", "inbox", sort_order=1)
        self.add_mailbox("mb-archive", "Archive", "archive", sort_order=2)
        self.add_mailbox("mb-drafts", "Drafts", "drafts", sort_order=3)
        self.add_mailbox("mb-sent", "Sent", "sent", sort_order=4)
        self.add_mailbox("mb-junk", "Spam", "junk", sort_order=5)
        self.add_mailbox("mb-trash", "Trash", "trash", sort_order=6)

    def add_identity(self, identity_id: str, email: str, name: str = "", **extra: Any) -> dict[str, Any]:
        identity = {"id": identity_id, "email": email, "name": name, **extra}
        self.identities.append(identity)
        return identity

    def add_email(
        self,
        email_id: str,
        thread_id: str,
        mailbox_ids: list[str],
        *,
        subject: str = "",
        sender: Any = ("Sender", "sender@example.com"),
        to: Any = ("Me", "me@example.com"),
        received_at: str | None = None,
        keywords: dict[str, bool] | None = None,
        text: str | None = None,
        html: str | None = None,
        message_id: str | None = None,
        references: list[str] | None = None,
        attachments: list[dict[str, Any]] | None = None,
        preview: str | None = None,
    ) -> dict[str, Any]:
        body_values: dict[str, Any] = {}
        text_body: list[dict[str, Any]] = []
        html_body: list[dict[str, Any]] = []
        if text is not None:
            body_values["1"] = {"value": text}
            text_body.append({"partId": "1", "type": "text/plain"})
        if html is not None:
            body_values["2"] = {"value": html}
            html_body.append({"partId": "2", "type": "text/html"})

        record = {
            "id": email_id,
            "blobId": f"blob-{email_id}",
            "threadId": thread_id,
            "mailboxIds": {mailbox_id: True for mailbox_id in mailbox_ids},
            "keywords": dict(keywords if keywords is not None else {"$seen": True}),
            "from": _addresses(sender),
            "to": _addresses(to),
            "cc": [],
            "bcc": [],
            "replyTo": [],
            "subject": subject,
            "receivedAt": received_at or self._timestamp(),
            "sentAt": None,
            "preview": preview if preview is not None else (text or "")[:100],
            "messageId": [message_id or f"{email_id}@example.com"],
            "inReplyTo": None,
            "references": references,
            "textBody": text_body,
            "htmlBody": html_body,
            "bodyValues": body_values,
            "attachments": attachments or [],
        }
        self.emails[email_id] = record
        return record

    def add_blob(self, blob_id: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self.blobs[blob_id] = (data, content_type)

    # --- Inspection ---

    def calls(self, method: str) -> list[dict[str, Any]]:
        """Arguments of every call to ``method``, in order."""
        return [
            args
            for body in self.requests
            for name, args, _ in body["methodCalls"]
            if name == method
        ]

    def mailbox_ids_of(self, email_id: str) -> set[str]:
        return {k for k, v in self.emails[email_id]["mailboxIds"].items() if v}

    # --- HTTP ---

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        path = request.url.path

        if request.headers.get("Authorization") != f"Bearer {TOKEN}":
            return httpx.Response(401, json={"type": "unauthorized"})

        if request.method == "GET" and url == SESSION_URL:
            return httpx.Response(200, json=self.session_resource())

        if request.method == "POST" and url == API_URL:
            if self.fail_status is not None:
                return httpx.Response(self.fail_status, text="server unavailable")
            body = json.loads(request.content)
            self.requests.append(body)
            return httpx.Response(200, json=self._process(body))

        if request.method == "POST" and path.startswith("/jmap/upload/"):
            if self.upload_body is not None:
                return httpx.Response(201, text=self.upload_body)
            blob_id = self._next("blob-up-")
            content_type = request.headers.get("Content-Type", "application/octet-stream")
            self.blobs[blob_id] = (request.content, content_type)
            return httpx.Response(
                201,
                json={
                    "accountId": ACCOUNT_ID,
                    "blobId": blob_id,
                    "type": content_type,
                    "size": len(request.content),
                },
            )

        if request.method == "GET" and path.startswith("/jmap/download/"):
            parts = path.split("/")
            blob_id = parts[4] if len(parts) > 4 else ""
            if blob_id not in self.blobs:
                return httpx.Response(404)
            data, content_type = self.blobs[blob_id]
            return httpx.Response(200, content=data, headers={"Content-Type": content_type})

        return httpx.Response(404)

    def _process(self, body: dict[str, Any]) -> dict[str, Any]:
        responses: list[list[Any]] = []
        created_ids: dict[str, str] = {}
        for name, args, call_id in body["methodCalls"]:
            if name in self.method_errors:
                responses.append(["error", {"type": self.method_errors[name]}, call_id])
                continue
            try:
                resolved = self._resolve_references(args, responses)
            except LookupError:
                responses.append(["error", {"type": "invalidResultReference"}, call_id])
                continue
            handler = getattr(self, "_" + name.replace("/", "_").lower(), None)
            if handler is None:
                responses.append(["error", {"type": "unknownMethod"}, call_id])
                continue
            responses.append([name, handler(resolved, created_ids), call_id])
        return {"methodResponses": responses, "sessionState": "s1"}

    def _resolve_references(self, args: dict[str, Any], responses: list[list[Any]]) -> dict[str, Any]:
        resolved = {}
        for key, value in args.items():
            if not key.startswith("#"):
                resolved[key] = value
                continue
            for name, result, call_id in responses:
                if call_id == value["resultOf"] and name == value["name"]:
                    resolved[key[1:]] = _pointer(result, value["path"])
                    break
            else:
                raise LookupError(value["resultOf"])
        return resolved

    # --- Mailbox ---

    def _mailbox_get(self, args: dict[str, Any], created_ids: dict[str, str]) -> dict[str, Any]:
        self.mailbox_get_calls += 1
        listing = []
        for mailbox in self.mailboxes.values():
            members = [e for e in self.emails.values() if e["mailboxIds"].get(mailbox["id"])]
            unread = [e for e in members if not e["keywords"].get("$seen")]
            listing.append(
                {
                    **mailbox,
                    "totalEmails": len(members),
                    "unreadEmails": len(unread),
                    "totalThreads": len({e["threadId"] for e in members}),
                    "unreadThreads": len({e["threadId"] for e in unread}),
                }
            )
        return {"accountId": ACCOUNT_ID, "state": "m1", "list": listing, "notFound": []}

    def _mailbox_set(self, args: dict[str, Any], created_ids: dict[str, str]) -> dict[str, Any]:
        result: dict[str, Any] = {
            "accountId": ACCOUNT_ID,
            "newState": "m2",
            "created": {},
            "destroyed": [],
            "notCreated": {},
            "notDestroyed": {},
        }
        for creation_id, record in (args.get("create") or {}).items():
            if not record.get("name"):
                result["notCreated"][creation_id] = {"type": "invalidProperties", "properties": ["name"]}
                continue
            mailbox_id = self._next("mb-")
            self.add_mailbox(mailbox_id, record["name"], parent_id=record.get("parentId"))
            created_ids[creation_id] = mailbox_id
            result["created"][creation_id] = {"id": mailbox_id}
        for mailbox_id in args.get("destroy") or []:
            if mailbox_id not in self.mailboxes:
                result["notDestroyed"][mailbox_id] = {"type": "notFound"}
                continue
            del self.mailboxes[mailbox_id]
            for email in self.emails.values():
                email["mailboxIds"].pop(mailbox_id, None)
            result["destroyed"].append(mailbox_id)
        return result

    # --- Email ---

    def _matches(self, email: dict[str, Any], condition: dict[str, Any] | None) -> bool:
        if not condition:
            return True
        if "operator" in condition:
            results = [self._matches(email, c) for c in condition["conditions"]]
            if condition["operator"] == "AND":
                return all(results)
            if condition["operator"] == "OR":
                return any(results)
            return not any(results)

        for key, value in condition.items():
            if key == "inMailbox" and not email["mailboxIds"].get(value):
                return False
            if key == "inThread" and email["threadId"] != value:
                return False
            if key in ("from", "to", "cc", "bcc") and value.lower() not in _address_text(email[key]):
                return False
            if key == "text":
                haystack = " ".join(
                    [email["subject"], _address_text(email["from"])]
                    + [v["value"] for v in email["bodyValues"].values()]
                ).lower()
                if value.lower() not in haystack:
                    return False
            if key == "hasKeyword" and not email["keywords"].get(value):
                return False
            if key == "notKeyword" and email["keywords"].get(value):
                return False
            if key == "before" and not email["receivedAt"] < value:
                return False
            if key == "after" and not email["receivedAt"] >= value:
                return False
            if key == "header":
                header_name, header_value = value
                if header_name.lower() != "message-id":
                    return False
                wanted = header_value.strip("<>")
                if wanted not in [m.strip("<>") for m in email["messageId"] or []]:
                    return False
        return True

    def _email_query(self, args: dict[str, Any], created_ids: dict[str, str]) -> dict[str, Any]:
        matches = [e for e in self.emails.values() if self._matches(e, args.get("filter"))]
        for comparator in reversed(args.get("sort") or []):
            matches.sort(
                key=lambda e: e[comparator["property"]] or "",
                reverse=not comparator.get("isAscending", True),
            )
        if args.get("collapseThreads"):
            seen: set[str] = set()
            collapsed = []
            for email in matches:
                if email["threadId"] not in seen:
                    seen.add(email["threadId"])
                    collapsed.append(email)
            matches = collapsed

        position = args.get("position") or 0
        limit = args.get("limit")
        window = matches[position:] if limit is None else matches[position:position + limit]
        result = {
            "accountId": ACCOUNT_ID,
            "queryState": "q1",
            "canCalculateChanges": False,
            "position": position,
            "ids": [e["id"] for e in window],
        }
        if self.report_total and args.get("calculateTotal"):
            result["total"] = len(matches)
        return result

    def _email_get(self, args: dict[str, Any], created_ids: dict[str, str]) -> dict[str, Any]:
        ids = args.get("ids")
        if ids is None:
            ids = list(self.emails)
        properties = args.get("properties")
        listing, not_found = [], []
        for email_id in ids:
            email = self.emails.get(email_id)
            if email is None:
                not_found.append(email_id)
                continue
            record = copy.deepcopy(email)
            if properties:
                record = {k: v for k, v in record.items() if k in properties or k == "id"}
            listing.append(record)
        return {"accountId": ACCOUNT_ID, "state": "e1", "list": listing, "notFound": not_found}

    def _apply_patch(self, email: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any] | None:
        """Apply a patch to a copy; return the SetError on failure."""
        updated = copy.deepcopy(email)
        for key, value in patch.items():
            if key in ("mailboxIds", "keywords"):
                updated[key] = dict(value)
                continue
            root, _, member = key.partition("/")
            if root not in ("mailboxIds", "keywords") or not member:
                return {"type": "invalidProperties", "properties": [key]}
            if root == "mailboxIds" and member not in self.mailboxes:
                return {"type": "invalidProperties", "properties": [key]}
            if value is None:
                updated[root].pop(member, None)
            elif value is True:
                updated[root][member] = True
            else:
                return {"type": "invalidPatch", "properties": [key]}
        if not updated["mailboxIds"]:
            return {"type": "invalidProperties", "properties": ["mailboxIds"]}
        email.clear()
        email.update(updated)
        return None

    def _create_email(self, record: dict[str, Any]) -> dict[str, Any]:
        email_id = self._next("e-")
        thread_id = None
        for reply_to in record.get("inReplyTo") or []:
            for existing in self.emails.values():
                if reply_to.strip("<>") in [m.strip("<>") for m in existing["messageId"] or []]:
                    thread_id = existing["threadId"]
        body_values = record.get("bodyValues") or {}
        text_body = record.get("textBody") or []
        html_body = record.get("htmlBody") or []
        first_part = (text_body or html_body or [{}])[0].get("partId")
        preview = body_values.get(first_part, {}).get("value", "")[:100]
        stored = {
            "id": email_id,
            "blobId": f"blob-{email_id}",
            "threadId": thread_id or self._next("t-"),
            "mailboxIds": dict(record["mailboxIds"]),
            "keywords": dict(record.get("keywords") or {}),
            "from": record.get("from") or [],
            "to": record.get("to") or [],
            "cc": record.get("cc") or [],
            "bcc": record.get("bcc") or [],
            "replyTo": record.get("replyTo") or [],
            "subject": record.get("subject", ""),
            "receivedAt": self._timestamp(),
            "sentAt": None,
            "preview": preview,
            "messageId": [f"{email_id}@jmap.test"],
            "inReplyTo": record.get("inReplyTo"),
            "references": record.get("references"),
            "textBody": text_body,
            "htmlBody": html_body,
            "bodyValues": copy.deepcopy(body_values),
            "attachments": record.get("attachments") or [],
        }
        self.emails[email_id] = stored
        return stored

    def _email_set(self, args: dict[str, Any], created_ids: dict[str, str]) -> dict[str, Any]:
        result: dict[str, Any] = {
            "accountId": ACCOUNT_ID,
            "newState": "e2",
            "created": {},
            "updated": {},
            "destroyed": [],
            "notCreated": {},
            "notUpdated": {},
            "notDestroyed": {},
        }
        for creation_id, record in (args.get("create") or {}).items():
            mailbox_ids = record.get("mailboxIds") or {}
            if not mailbox_ids or any(m not in self.mailboxes for m in mailbox_ids):
                result["notCreated"][creation_id] = {"type": "invalidProperties", "properties": ["mailboxIds"]}
                continue
            stored = self._create_email(record)
            created_ids[creation_id] = stored["id"]
            result["created"][creation_id] = {
                "id": stored["id"],
                "blobId": stored["blobId"],
                "threadId": stored["threadId"],
                "size": 100,
            }
        for email_id, patch in (args.get("update") or {}).items():
            email = self.emails.get(email_id)
            if email is None:
                result["notUpdated"][email_id] = {"type": "notFound"}
                continue
            error = self._apply_patch(email, patch)
            if error is not None:
                result["notUpdated"][email_id] = error
            else:
                result["updated"][email_id] = None
        for email_id in args.get("destroy") or []:
            if self.emails.pop(email_id, None) is None:
                result["notDestroyed"][email_id] = {"type": "notFound"}
            else:
                result["destroyed"].append(email_id)
        return result

    # --- Identity / submission ---

    def _identity_get(self, args: dict[str, Any], created_ids: dict[str, str]) -> dict[str, Any]:
        return {"accountId": ACCOUNT_ID, "state": "i1", "list": copy.deepcopy(self.identities), "notFound": []}

    def _emailsubmission_set(self, args: dict[str, Any], created_ids: dict[str, str]) -> dict[str, Any]:
        result: dict[str, Any] = {
            "accountId": ACCOUNT_ID,
            "newState": "sub2",
            "created": {},
            "notCreated": {},
        }
        identity_ids = {i["id"] for i in self.identities}
        for creation_id, record in (args.get("create") or {}).items():
            email_id = record.get("emailId", "")
            if email_id.startswith("#"):
                email_id = created_ids.get(email_id[1:], "")
            if self.reject_submissions:
                result["notCreated"][creation_id] = {"type": "forbiddenToSend", "description": "quota"}
                continue
            if email_id not in self.emails or record.get("identityId") not in identity_ids:
                result["notCreated"][creation_id] = {"type": "invalidProperties"}
                continue
            submission_id = self._next("sub-")
            self.submissions.append({"id": submission_id, "emailId": email_id, "identityId": record["identityId"]})
            result["created"][creation_id] = {"id": submission_id}
        return result
