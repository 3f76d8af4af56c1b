"""Installable triggers.

The Apps Script REST API exposes no trigger resource, so triggers are
listed, created and deleted by running ScriptApp snippets inside the
project (see snippets.py).
"""

import logging
from typing import Optional

from ..exceptions import ValidationError
from ..validators import validate_script_id
from .service import wraps_remote_errors
from .snippets import run_snippet

logger = logging.getLogger(__name__)

TRIGGER_ACTIONS = ("list", "create", "delete")
EVENT_TYPES = ("CLOCK", "ON_OPEN", "ON_EDIT", "ON_FORM_SUBMIT")
CLOCK_MINUTES = (1, 5, 10, 15, 30)
CLOCK_HOURS = (1, 2, 4, 6, 8, 12)
SOURCE_TYPES = ("SPREADSHEET", "FORM", "DOCUMENT")

LIST_TRIGGERS_JS = """
return ScriptApp.getProjectTriggers().map(function (t) {
  return {
    triggerId: t.getUniqueId(),
    handlerFunction: t.getHandlerFunction(),
    eventType: String(t.getEventType()),
    triggerSource: String(t.getTriggerSource()),
    triggerSourceId: t.getTriggerSourceId()
  };
});
"""

CREATE_TRIGGER_JS = """
var builder = ScriptApp.newTrigger(args.handlerFunction);
var trigger;
if (args.eventType === 'CLOCK') {
  var clock = builder.timeBased();
  clock = args.everyMinutes ? clock.everyMinutes(args.everyMinutes) : clock.everyHours(args.everyHours);
  trigger = clock.create();
} else {
  var source;
  if (args.sourceType === 'FORM') {
    source = builder.forForm(args.sourceId || FormApp.getActiveForm().getId());
  } else if (args.sourceType === 'DOCUMENT') {
    source = builder.forDocument(args.sourceId || DocumentApp.getActiveDocument().getId());
  } else {
    source = builder.forSpreadsheet(args.sourceId || SpreadsheetApp.getActive().getId());
  }
  if (args.eventType === 'ON_OPEN') {
    trigger = source.onOpen().create();
  } else if (args.eventType === 'ON_EDIT') {
    trigger = source.onEdit().create();
  } else {
    trigger = source.onFormSubmit().create();
  }
}
return {
  triggerId: trigger.getUniqueId(),
  handlerFunction: trigger.getHandlerFunction(),
  eventType: String(trigger.getEventType())
};
"""

DELETE_TRIGGER_JS = """
var all = ScriptApp.getProjectTriggers();
for (var i = 0; i < all.length; i++) {
  if (all[i].getUniqueId() === args.triggerId) {
    ScriptApp.deleteTrigger(all[i]);
    return {deleted: args.triggerId};
  }
}
throw new Error('Trigger not found: ' + args.triggerId);
"""


def build_trigger_args(config: dict) -> dict:
    """
    Validate a trigger config and convert it to snippet arguments.

    Config keys: handler_function, event_type, and for CLOCK either
    every_minutes or every_hours; for the other events optionally
    source_type (SPREADSHEET, FORM, DOCUMENT) and source_id.
    """
    handler = config.get("handler_function")
    event_type = (config.get("event_type") or "").upper()
    if not handler:
        raise ValidationError("Trigger config requires handler_function")
    if event_type not in EVENT_TYPES:
        raise ValidationError(f"Invalid event_type '{event_type}'. Expected one of: {', '.join(EVENT_TYPES)}")

    args = {"handlerFunction": handler, "eventType": event_type}
    if event_type == "CLOCK":
        minutes = config.get("every_minutes")
        hours = config.get("every_hours")
        if minutes:
            if minutes not in CLOCK_MINUTES:
                raise ValidationError(f"every_minutes must be one of {CLOCK_MINUTES}")
            args["everyMinutes"] = minutes
        elif hours:
            if hours not in CLOCK_HOURS:
                raise ValidationError(f"every_hours must be one of {CLOCK_HOURS}")
            args["everyHours"] = hours
        else:
            raise ValidationError("CLOCK triggers require every_minutes or every_hours")
    else:
        source_type = (config.get("source_type") or "SPREADSHEET").upper()
        if source_type not in SOURCE_TYPES:
            raise ValidationError(f"Invalid source_type '{source_type}'. Expected one of: {', '.join(SOURCE_TYPES)}")
        if event_type == "ON_EDIT" and source_type != "SPREADSHEET":
            raise ValidationError("ON_EDIT triggers are only available for spreadsheets")
        args["sourceType"] = source_type
        if config.get("source_id"):
            args["sourceId"] = config["source_id"]
    return args


@wraps_remote_errors("List triggers")
def list_triggers(auth, script_id: str) -> dict:
    validate_script_id(script_id)
    triggers = run_snippet(auth, script_id, "list_triggers", LIST_TRIGGERS_JS) or []
    return {"triggers": triggers}


@wraps_remote_errors("Create trigger")
def create_trigger(auth, script_id: str, trigger_config: dict) -> dict:
    validate_script_id(script_id)
    args = build_trigger_args(trigger_config or {})
    trigger = run_snippet(auth, script_id, "create_trigger", CREATE_TRIGGER_JS, args)
    logger.info(f"Created {args['eventType']} trigger for '{args['handlerFunction']}' in {script_id}")
    return {"trigger": trigger}


@wraps_remote_errors("Delete trigger")
def delete_trigger(auth, script_id: str, trigger_id: str) -> dict:
    validate_script_id(script_id)
    if not trigger_id:
        raise ValidationError("Deleting a trigger requires trigger_id")
    result = run_snippet(auth, script_id, "delete_trigger", DELETE_TRIGGER_JS, {"triggerId": trigger_id})
    logger.info(f"Deleted trigger {trigger_id} from {script_id}")
    return result


def manage_triggers(
    auth,
    script_id: str,
    action: str,
    trigger_config: Optional[dict] = None,
    trigger_id: Optional[str] = None,
) -> dict:
    """Dispatch a trigger action: list, create or delete."""
    if action == "list":
        return list_triggers(auth, script_id)
    if action == "create":
        return create_trigger(auth, script_id, trigger_config)
    if action == "delete":
        return delete_trigger(auth, script_id, trigger_id)
    raise ValidationError(f"Unknown trigger action '{action}'. Expected one of: {', '.join(TRIGGER_ACTIONS)}")
