"""AuditEvent FHIR Resource Implementation.

AuditEvents are the system of record for who did what to whom, when, and
with what outcome. Three kinds are produced:

- access events (read/create/update/delete of patient data)
- export events (a patient bundle was downloaded)
- authentication events (login/logout)

Every event carries exactly two agents: the human actor (``requestor``) and
the serving application.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from fhirclient.models.auditevent import AuditEvent

from ..config import Settings, get_settings
from ..models.identity import Actor
from .fhir_base import BaseFHIRResource, FHIRJson

logger = logging.getLogger(__name__)

# FHIR resource type for this module
__fhir_resource__ = "AuditEvent"

AUDIT_EVENT_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/audit-event-type"
AUDIT_EVENT_SUBTYPE_SYSTEM = "http://hl7.org/CodeSystem/audit-event-sub-type"
RESTFUL_INTERACTION_SYSTEM = "http://hl7.org/fhir/restful-interaction"
SECURITY_SOURCE_TYPE_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/security-source-type"
)
ENTITY_ROLE_SYSTEM = "http://terminology.hl7.org/CodeSystem/entity-role"

# Network access point type "2": IP address
NETWORK_TYPE_IP = "2"


class AuditAction(str, Enum):
    """AuditEvent action codes."""

    CREATE = "C"
    READ = "R"
    UPDATE = "U"
    DELETE = "D"
    EXECUTE = "E"


class AuditOutcome(str, Enum):
    """AuditEvent outcome codes."""

    SUCCESS = "0"
    MINOR_FAILURE = "4"
    SERIOUS_FAILURE = "8"


class AuthEventKind(str, Enum):
    """Authentication event kinds."""

    LOGIN = "login"
    LOGOUT = "logout"


# action -> (restful-interaction code, display)
INTERACTIONS = {
    AuditAction.READ: ("read", "Read"),
    AuditAction.CREATE: ("create", "Create"),
    AuditAction.UPDATE: ("update", "Update"),
    AuditAction.DELETE: ("delete", "Delete"),
    AuditAction.EXECUTE: ("operation", "Execute"),
}

OUTCOME_DESCRIPTIONS = {
    AuditOutcome.SUCCESS: "Success",
    AuditOutcome.MINOR_FAILURE: "Minor Failure",
    AuditOutcome.SERIOUS_FAILURE: "Serious Failure",
}

AUTH_SUBTYPES = {
    AuthEventKind.LOGIN: ("110122", "Login"),
    AuthEventKind.LOGOUT: ("110123", "Logout"),
}


class AuditEventResource(BaseFHIRResource):
    """Builds AuditEvent resources for access, export and auth actions."""

    resource_type = AuditEvent

    def __init__(self, settings: Optional[Settings] = None, **kwargs: Any):
        """Initialize the builder.

        Args:
            settings: Source of the application identity written into events
            **kwargs: Passed to :class:`BaseFHIRResource`
        """
        super().__init__(**kwargs)
        self.settings = settings or get_settings()

    def build_access(
        self,
        actor: Actor,
        patient_id: str,
        action: AuditAction = AuditAction.READ,
        resource_type: str = "Patient",
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        description: str = "",
        network_address: Optional[str] = None,
    ) -> FHIRJson:
        """Create an AuditEvent for access to a patient's data.

        Args:
            actor: Acting user
            patient_id: Id of the patient whose data was touched
            action: Read, create, update, delete or execute
            resource_type: Resource type accessed; anything other than
                ``Patient`` adds a second entity describing it
            outcome: Outcome code
            description: Human readable description of the action
            network_address: Client IP address, if known

        Returns:
            AuditEvent resource JSON
        """
        action = AuditAction(action)
        outcome = AuditOutcome(outcome)
        code, display = INTERACTIONS[action]

        entities = [self._patient_entity(patient_id, description)]
        if resource_type != "Patient":
            entities.append(
                {
                    "what": {
                        "type": resource_type,
                        "reference": f"{resource_type}/unknown",
                    },
                    "type": self.coding(ENTITY_ROLE_SYSTEM, "4", "Domain Resource"),
                }
            )

        return self._build(
            event_type=self.coding(
                AUDIT_EVENT_TYPE_SYSTEM, "rest", "Restful Operation"
            ),
            subtype=self.coding(RESTFUL_INTERACTION_SYSTEM, code, display),
            action=action,
            outcome=outcome,
            actor=actor,
            network_address=network_address,
            entities=entities,
            observer=self.settings.audit_observer_display,
        )

    def build_export(
        self,
        actor: Actor,
        patient_id: str,
        resources_exported: Sequence[str],
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        network_address: Optional[str] = None,
    ) -> FHIRJson:
        """Create an AuditEvent for a patient data export.

        The exported resource types are listed in the entity detail.
        """
        exported = list(resources_exported)
        entities = [
            self._patient_entity(
                patient_id, f"Exported patient data: {', '.join(exported)}"
            ),
            {
                "what": {"display": "FHIR Bundle Export"},
                "type": self.coding(ENTITY_ROLE_SYSTEM, "4", "Domain Resource"),
                "detail": [
                    {"type": "exported-resources", "valueString": ",".join(exported)}
                ],
            },
        ]

        return self._build(
            event_type=self.coding(AUDIT_EVENT_TYPE_SYSTEM, "export", "Export"),
            subtype=self.coding(AUDIT_EVENT_TYPE_SYSTEM, "export", "Export"),
            action=AuditAction.EXECUTE,
            outcome=AuditOutcome(outcome),
            actor=actor,
            network_address=network_address,
            entities=entities,
            observer=self.settings.audit_observer_display,
        )

    def build_auth(
        self,
        actor: Actor,
        kind: AuthEventKind = AuthEventKind.LOGIN,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        network_address: Optional[str] = None,
    ) -> FHIRJson:
        """Create an AuditEvent for a login or logout."""
        kind = AuthEventKind(kind)
        outcome = AuditOutcome(outcome)
        code, display = AUTH_SUBTYPES[kind]
        verb = "User login" if kind == AuthEventKind.LOGIN else "User logout"
        result = "Success" if outcome == AuditOutcome.SUCCESS else "Failed"

        return self._build(
            event_type=self.coding(AUDIT_EVENT_TYPE_SYSTEM, "110110", "Authentication"),
            subtype=self.coding(AUDIT_EVENT_SUBTYPE_SYSTEM, code, display),
            action=AuditAction.EXECUTE,
            outcome=outcome,
            actor=actor,
            network_address=network_address,
            entities=[
                {
                    "what": {"display": "User Authentication Event"},
                    "type": self.coding(ENTITY_ROLE_SYSTEM, "3", "User"),
                    "description": f"{verb} - {result}",
                }
            ],
            observer=self.settings.audit_auth_observer_display,
            outcome_desc=(
                "Success"
                if outcome == AuditOutcome.SUCCESS
                else "Failed Authentication"
            ),
        )

    def _build(
        self,
        event_type: Dict[str, str],
        subtype: Dict[str, str],
        action: AuditAction,
        outcome: AuditOutcome,
        actor: Actor,
        network_address: Optional[str],
        entities: List[Dict[str, Any]],
        observer: str,
        outcome_desc: Optional[str] = None,
    ) -> FHIRJson:
        return self.finalize(
            {
                "id": self.new_id(),
                "type": event_type,
                "subtype": [subtype],
                "action": action.value,
                "recorded": self.now(),
                "outcome": outcome.value,
                "outcomeDesc": outcome_desc or OUTCOME_DESCRIPTIONS[outcome],
                "agent": [
                    self._actor_agent(actor, network_address),
                    self._application_agent(),
                ],
                "source": {
                    "site": self.settings.audit_source_site,
                    "observer": {"display": observer},
                    "type": [
                        self.coding(
                            SECURITY_SOURCE_TYPE_SYSTEM, "4", "Application Server"
                        )
                    ],
                },
                "entity": entities,
            }
        )

    def _patient_entity(self, patient_id: str, description: str) -> Dict[str, Any]:
        entity: Dict[str, Any] = {
            "what": {"reference": f"Patient/{patient_id}"},
            "type": self.coding(ENTITY_ROLE_SYSTEM, "1", "Patient"),
        }
        text = self.clean_text(description)
        if text:
            entity["description"] = text
        return entity

    def _actor_agent(
        self, actor: Actor, network_address: Optional[str]
    ) -> Dict[str, Any]:
        agent: Dict[str, Any] = {
            "who": {"reference": actor.reference, "display": actor.name},
            "name": actor.name,
            "requestor": True,
        }
        if network_address:
            agent["network"] = {"address": network_address, "type": NETWORK_TYPE_IP}
        return agent

    def _application_agent(self) -> Dict[str, Any]:
        return {
            "who": {"display": self.settings.audit_application_display},
            "altId": self.settings.audit_application_alt_id,
            "requestor": False,
        }
