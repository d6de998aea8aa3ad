# orch

A small library for building agents on an event-sourced core. Reducers are
pure functions that take a state and an event and return the next state plus a
list of intents. Effect handlers carry out those intents and report back with
new events. A runner ties the two to a durable event log with snapshots and
idempotent intent execution, so a run can be rebuilt from its log at any time.

Modules:

- `orch.contracts` – `Event`, `Intent`, the `State` protocol and the abstract
  `Reducer` and `EffectHandler` classes.
- `orch.errmodel` – compact, categorised errors (`CompactError`, `Category`),
  the helpers `validation`, `policy`, `system`, `new`, `from_exception`,
  `is_category`, and `http_status` / `http_envelope` for mapping an error to an
  HTTP status and a JSON body.
- `orch.tool` – `Tool`, `ToolDescriptor`, `ToolPermission`, `describe_tool`
  and `json_schema_validator` (an empty schema accepts everything).
- `orch.registry` – a process-wide tool registry (`register_tool`,
  `resolve_tool`, `iter_tools`), `safe_invoke` and `ToolEffectHandler`, which
  runs intents named `"tool"` with args `{"name": ..., "args": {...}}` and
  returns a `tool_result` event.
- `orch.builtin_tools` – `FileReadTool` (reads files under a root directory,
  rejecting absolute, unclean or `..` paths) and `HTTPGetTool`.
- `orch.store` – `EventRecord`, `SnapshotRecord`, `RecordNotFound` and the
  abstract `EventStore`, `SnapshotStore` and `Store`.
- `orch.sqlstore` – `SQLStore`, a SQLite-backed `Store`, opened with
  `open_store("sqlite:<dsn>")`.
- `orch.runtime` – `Runner` and the abstract `SnapshotCodec`.
- `orch.prompt` – `PromptStore`, a versioned, linted in-memory prompt store,
  with `lint` and `unified_diff`.
- `orch.assembler` – `Assembler`, deterministic context assembly with pins,
  de-duplication and a token budget.
- `orch.evaluation` – `evaluate_prompt_fixtures`, `render_template` and
  `replay_run` with `Capture`.
- `orch.embedding`, `orch.llm`, `orch.vectorstore` – provider contracts and
  registries (`register`, `resolve`, `providers`), a deterministic
  `FakeEmbedder` and an in-memory `MemoryVectorStore`.
- `orch.chroma` – `ChromaStore`, a vector store talking to a ChromaDB server
  over HTTP. Importing the module registers its `factory` under the name
  `"chromadb"` in `orch.vectorstore`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## A tool, invoked safely

```python
from orch.tool import Tool, ToolDescriptor, ToolPermission, json_schema_validator
from orch.registry import register_tool, resolve_tool, safe_invoke


class SumTool(Tool):
    def describe(self):
        return ToolDescriptor(
            name="sum",
            input_schema=b'{"type":"object","properties":{"a":{"type":"number"},'
            b'"b":{"type":"number"}},"required":["a","b"],"additionalProperties":false}',
            output_schema=b'{"type":"object","properties":{"sum":{"type":"number"}},'
            b'"required":["sum"],"additionalProperties":false}',
            permissions=(ToolPermission("cpu"),),
        )

    def invoke(self, args):
        return {"sum": args["a"] + args["b"]}


register_tool(SumTool())
tool = resolve_tool("sum")
print(safe_invoke(tool, {"a": 1.0, "b": 2.0}, {"cpu": True}, json_schema_validator))
```

`register_tool` raises `ValueError` for a name that is already registered. A
missing permission makes `safe_invoke` raise a `CompactError` with category
`policy` and code `forbidden`; schema violations raise `validation` errors
with codes `invalid_input` or `invalid_output`.

## Running an agent

```python
from orch.sqlstore import open_store
from orch.runtime import Runner
from orch.contracts import Event

store = open_store("sqlite::memory:")
store.migrate()

runner = Runner(
    store, my_reducer, [my_handler], new_state=MyState,
    snapshot_codec=my_codec, snapshot_interval=2,
)
state = runner.handle_event("run-1", Event(id="e1", type="inc", payload={"n": 1}))
```

Each call replays the run from its latest snapshot, applies the reducer to the
incoming event, records it, executes the resulting intents and folds the events
they produce back into the state. An event whose id is already recorded is not
processed again, and intents carrying an idempotency key run at most once per
run. With a codec and a positive interval, a snapshot is saved whenever the
run's last sequence is a multiple of the interval. `replay_state(run_id)`
returns the rebuilt state and the sequence of the last event applied.

## Context assembly

```python
from orch.assembler import Assembler, Item, Pinned

asm = Assembler(token_estimator=len, max_tokens=10)
items, log = asm.assemble(
    [Item("docA", "1", "abcd"), Item("docB", "2", "ef"), Item("docC", "3", "ghijk")],
    [Pinned("docC", "3")],
)
```

Pinned items come first, then the rest ordered by source and chunk id; nothing
is taken that would exceed the budget, and `log` records what was included and
how many items were dropped. Without an estimator, tokens are counted as
characters.

## Prompts and evaluation

`PromptStore.save` assigns version 1 to a new name and the next version
otherwise, and raises `LintError` (with `issues`) for a missing name, an empty
body or secret-like content. `evaluate_prompt_fixtures(directory)` reads every
`*.json` fixture (`name`, `prompt`, `vars`, `expect.contains`,
`expect.not_contains`), renders it with `render_template`, and returns an
`EvaluationResult` with `score`, `total`, `passed` and `details`. Templates
support `{{.field}}` and `{{.a.b}}` actions, comments and `-` whitespace
trimming; a missing key is a render error.

## What it does not do

- `open_store` supports SQLite only; PostgreSQL URLs and keyword DSNs raise
  `ValueError`.
- `orch.llm` and `orch.embedding` define contracts and registries but ship no
  clients for hosted model providers; `FakeEmbedder` is the only embedder.
- There is no tokenizer-based token estimator, no tracing set-up, no
  Model Context Protocol client or server, and no command-line program or
  HTTP server.