"""Java binding annotations and the ``function.json`` binding they produce."""

from __future__ import annotations

from enum import Enum, StrEnum


class BindingDirection(StrEnum):
    IN = "in"
    OUT = "out"
    INOUT = "inout"


_IN, _OUT, _INOUT = BindingDirection.IN, BindingDirection.OUT, BindingDirection.INOUT


class BindingEnum(Enum):
    """``(annotation simple name, binding type, direction)``"""

    HttpTrigger = ("HttpTrigger", "httpTrigger", _IN)
    HttpOutput = ("HttpOutput", "http", _OUT)
    TimerTrigger = ("TimerTrigger", "timerTrigger", _IN)
    WarmupTrigger = ("WarmupTrigger", "warmupTrigger", _IN)
    BlobTrigger = ("BlobTrigger", "blobTrigger", _IN)
    BlobInput = ("BlobInput", "blob", _IN)
    BlobOutput = ("BlobOutput", "blob", _OUT)
    QueueTrigger = ("QueueTrigger", "queueTrigger", _IN)
    QueueOutput = ("QueueOutput", "queue", _OUT)
    TableInput = ("TableInput", "table", _IN)
    TableOutput = ("TableOutput", "table", _OUT)
    EventHubTrigger = ("EventHubTrigger", "eventHubTrigger", _IN)
    EventHubOutput = ("EventHubOutput", "eventHub", _OUT)
    EventGridTrigger = ("EventGridTrigger", "eventGridTrigger", _IN)
    EventGridOutput = ("EventGridOutput", "eventGrid", _OUT)
    CosmosDBTrigger = ("CosmosDBTrigger", "cosmosDBTrigger", _IN)
    CosmosDBInput = ("CosmosDBInput", "cosmosDB", _IN)
    CosmosDBOutput = ("CosmosDBOutput", "cosmosDB", _OUT)
    ServiceBusQueueTrigger = ("ServiceBusQueueTrigger", "serviceBusTrigger", _IN)
    ServiceBusTopicTrigger = ("ServiceBusTopicTrigger", "serviceBusTrigger", _IN)
    ServiceBusQueueOutput = ("ServiceBusQueueOutput", "serviceBus", _OUT)
    ServiceBusTopicOutput = ("ServiceBusTopicOutput", "serviceBus", _OUT)
    KafkaTrigger = ("KafkaTrigger", "kafkaTrigger", _IN)
    KafkaOutput = ("KafkaOutput", "kafka", _OUT)
    SendGridOutput = ("SendGridOutput", "sendGrid", _OUT)
    TwilioSmsOutput = ("TwilioSmsOutput", "twilioSms", _OUT)
    SignalRTrigger = ("SignalRTrigger", "signalRTrigger", _IN)
    SignalRConnectionInfoInput = ("SignalRConnectionInfoInput", "signalRConnectionInfo", _IN)
    SignalROutput = ("SignalROutput", "signalR", _OUT)
    SqlTrigger = ("SqlTrigger", "sqlTrigger", _IN)
    SqlInput = ("SqlInput", "sql", _IN)
    SqlOutput = ("SqlOutput", "sql", _OUT)
    DurableActivityTrigger = ("DurableActivityTrigger", "activityTrigger", _IN)
    DurableOrchestrationTrigger = ("DurableOrchestrationTrigger", "orchestrationTrigger", _IN)
    DurableEntityTrigger = ("DurableEntityTrigger", "entityTrigger", _IN)
    DurableClientInput = ("DurableClientInput", "durableClient", _IN)
    CustomBinding = ("CustomBinding", None, None)

    def __init__(self, annotation: str, binding_type: str | None, direction: BindingDirection | None) -> None:
        self.annotation = annotation
        self.binding_type = binding_type
        self.direction = direction

    @property
    def is_trigger(self) -> bool:
        return bool(self.binding_type) and self.binding_type.lower().endswith("trigger")

    @classmethod
    def from_annotation(cls, annotation: str) -> BindingEnum | None:
        """Look up by simple or fully-qualified annotation name."""
        simple = annotation.rsplit(".", 1)[-1]
        for member in cls:
            if member.annotation == simple:
                return member
        return None

    @classmethod
    def from_type(cls, binding_type: str, direction: str | None = None) -> BindingEnum | None:
        for member in cls:
            if member.binding_type and member.binding_type.lower() == binding_type.lower():
                if direction is None or (member.direction or "").lower() == direction.lower():
                    return member
        return None


# Bindings that need no extension beyond the Functions host.
BINDINGS_WITHOUT_EXTENSION = frozenset({BindingEnum.HttpTrigger, BindingEnum.HttpOutput})

# Bindings whose connection defaults to the function's @StorageAccount.
STORAGE_BINDINGS = frozenset(
    {
        BindingEnum.BlobTrigger,
        BindingEnum.BlobInput,
        BindingEnum.BlobOutput,
        BindingEnum.QueueTrigger,
        BindingEnum.QueueOutput,
        BindingEnum.TableInput,
        BindingEnum.TableOutput,
    }
)
