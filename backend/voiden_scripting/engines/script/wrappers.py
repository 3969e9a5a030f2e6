"""
Generated guest sources.

WORKER_SOURCE        the JavaScript guest. Talks only through
                     self.postMessage / self.onmessage with JSON messages:
                     start, log, rpc:request, rpc:response, done.
NODE_HOST_WRAPPER    `node -e` program for the host bridge: reads one JSON
                     payload from stdin, runs WORKER_SOURCE in a worker
                     thread (require() available), answers RPC from the
                     pre-resolved maps, writes one JSON line.
WORKER_CHANNEL_SHIM  `node -e` program for the worker path: runs
                     WORKER_SOURCE in a vm context (no require, no process)
                     and relays messages as JSON lines over stdin/stdout, so
                     RPC reaches the live host API.
IN_PROCESS_SHIM      prelude/epilogue for an embedded V8 context: messages
                     go through an outbox drained by the host.
PYTHON_BOOTSTRAP     `python -c` program that runs the Python guest.

The assertion and normalization helpers in WORKER_SOURCE mirror
assertions.py and normalize.py rule for rule.
"""

WORKER_SOURCE = r"""
const AsyncFunction = Object.getPrototypeOf(async function () {}).constructor;

const COLLECTION_FIELDS = ['headers', 'queryParams', 'pathParams'];
const LOG_LEVELS = ['log', 'info', 'debug', 'warn', 'error'];
const OPERATOR_SYNONYMS = {
  '==': '==', '===': '===', '!=': '!=', '!==': '!==',
  '>': '>', '>=': '>=', '<': '<', '<=': '<=',
  'contains': 'contains', 'matches': 'matches', 'truthy': 'truthy', 'falsy': 'falsy',
  'eq': '==', 'equal': '==', 'neq': '!=', 'notequal': '!=',
  'greater': '>', 'greaterthan': '>', 'gte': '>=',
  'less': '<', 'lessthan': '<', 'lte': '<=',
  'includes': 'contains', 'regex': 'matches',
};

const logs = [];
const assertions = [];
let cancelled = false;
let rpcId = 0;
const pending = new Map();

function _hasOwn(obj, key) {
  return Object.prototype.hasOwnProperty.call(obj, key);
}

function _isObject(v) {
  return v !== null && typeof v === 'object' && !Array.isArray(v);
}

function _plain(v) {
  if (v === undefined) return null;
  try {
    const text = JSON.stringify(v);
    return text === undefined ? String(v) : JSON.parse(text);
  } catch (e) {
    return String(v);
  }
}

function _jsString(v) {
  if (v === null || v === undefined) return 'null';
  if (Array.isArray(v)) return v.map((x) => (x === null || x === undefined ? '' : _jsString(x))).join(',');
  if (typeof v === 'object') return '[object Object]';
  return String(v);
}

function _toJsonText(v) {
  return JSON.stringify(_plain(v));
}

// ---------------------------------------------------------------------------
// Collections
// ---------------------------------------------------------------------------

function _entry(key, value, enabled) {
  const k = (key === null || key === undefined ? '' : _jsString(_plain(key))).trim();
  if (!k) return null;
  return {
    key: k,
    value: value === null || value === undefined ? '' : _jsString(_plain(value)),
    enabled: enabled !== false,
  };
}

function _toCollectionArray(input) {
  const items = [];
  if (Array.isArray(input)) {
    for (const item of input) {
      if (!_isObject(item)) continue;
      const e = _entry(item.key, item.value, item.enabled);
      if (e) items.push(e);
    }
    return items;
  }
  if (_isObject(input)) {
    if (_hasOwn(input, 'key') && _hasOwn(input, 'value')) {
      const e = _entry(input.key, input.value, input.enabled);
      return e ? [e] : [];
    }
    for (const k of Object.keys(input)) {
      const e = _entry(k, input[k], true);
      if (e) items.push(e);
    }
  }
  return items;
}

function _kvPush(...values) {
  if (values.length === 2 && typeof values[0] === 'string' && (values[1] === null || typeof values[1] !== 'object')) {
    Array.prototype.push.apply(this, _toCollectionArray({ key: values[0], value: values[1] }));
    return this.length;
  }
  for (const v of values) {
    if (v !== null && typeof v === 'object') {
      Array.prototype.push.apply(this, _toCollectionArray(v));
    }
  }
  return this.length;
}

function _kvList(entries) {
  Object.defineProperty(entries, 'push', { value: _kvPush, enumerable: false });
  return entries;
}

function _makeRequest(raw) {
  const req = _isObject(raw) ? raw : {};
  for (const field of COLLECTION_FIELDS) {
    let current = _kvList(_toCollectionArray(req[field]));
    Object.defineProperty(req, field, {
      get() { return current; },
      set(v) { current = _kvList(_toCollectionArray(v)); },
      enumerable: true,
      configurable: true,
    });
  }
  return req;
}

function _snapshotRequest(req) {
  const out = _isObject(_plain(req)) ? _plain(req) : {};
  for (const field of COLLECTION_FIELDS) {
    out[field] = _toCollectionArray(out[field]);
  }
  return out;
}

function _normalizeLevel(value) {
  if (typeof value !== 'string') return null;
  const lowered = value.toLowerCase();
  if (lowered === 'warning') return 'warn';
  return LOG_LEVELS.indexOf(lowered) >= 0 ? lowered : null;
}

function _pushLog(level, args) {
  const entry = { level, args: args.map(_plain) };
  logs.push(entry);
  self.postMessage({ type: 'log', level, args: entry.args });
}

// ---------------------------------------------------------------------------
// Assertions
// ---------------------------------------------------------------------------

function _normalizeOperator(op) {
  if (typeof op !== 'string') return null;
  const key = op.trim().toLowerCase().replace(/\s+/g, '');
  return _hasOwn(OPERATOR_SYNONYMS, key) ? OPERATOR_SYNONYMS[key] : null;
}

function _jsonType(v) {
  if (v === null || v === undefined) return 'null';
  if (Array.isArray(v)) return 'array';
  const t = typeof v;
  if (t === 'boolean' || t === 'number' || t === 'string') return t;
  return 'object';
}

const _RADIX_DIGITS = { x: /^[0-9a-f]+$/i, o: /^[0-7]+$/, b: /^[01]+$/ };
const _RADIX = { x: 16, o: 8, b: 2 };

function _toNumber(v) {
  if (v === null || v === undefined) return 0;
  if (typeof v === 'boolean') return v ? 1 : 0;
  if (typeof v === 'number') return v;
  if (typeof v === 'string') {
    const s = v.trim();
    if (!s) return 0;
    if (s === 'Infinity' || s === '+Infinity') return Infinity;
    if (s === '-Infinity') return -Infinity;
    const m = /^0([xXoObB])([0-9a-fA-F]+)$/.exec(s);
    if (m) {
      const r = m[1].toLowerCase();
      return _RADIX_DIGITS[r].test(m[2]) ? parseInt(m[2], _RADIX[r]) : NaN;
    }
    if (/^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$/.test(s)) return parseFloat(s);
    return NaN;
  }
  if (Array.isArray(v)) return _toNumber(_jsString(v));
  return NaN;
}

function _isTruthy(v) {
  return Boolean(v);
}

function _strictEquals(a, b) {
  const ta = _jsonType(a);
  const tb = _jsonType(b);
  if (ta !== tb) return false;
  if (ta === 'array') return a.length === b.length && a.every((x, i) => _strictEquals(x, b[i]));
  if (ta === 'object') {
    const ka = Object.keys(a);
    const kb = Object.keys(b);
    return ka.length === kb.length && ka.every((k) => _hasOwn(b, k) && _strictEquals(a[k], b[k]));
  }
  return a === b;
}

function _looseEquals(a, b) {
  const ta = _jsonType(a);
  const tb = _jsonType(b);
  if (ta === 'null' || tb === 'null') return ta === tb;
  if (ta === 'array' || ta === 'object' || tb === 'array' || tb === 'object') return ta === tb && _strictEquals(a, b);
  if (ta === 'boolean' || tb === 'boolean') return _toNumber(a) === _toNumber(b);
  if (ta === tb) return a === b;
  return _toNumber(a) === _toNumber(b);
}

function _toPrimitive(v) {
  return v !== null && typeof v === 'object' ? _jsString(v) : v;
}

function _compare(a, b, op) {
  let x = _toPrimitive(a);
  let y = _toPrimitive(b);
  if (!(typeof x === 'string' && typeof y === 'string')) {
    x = _toNumber(x);
    y = _toNumber(y);
    if (Number.isNaN(x) || Number.isNaN(y)) return false;
  }
  if (op === '>') return x > y;
  if (op === '>=') return x >= y;
  if (op === '<') return x < y;
  return x <= y;
}

function _evaluate(actual, operator, expected) {
  const a = _plain(actual);
  const e = _plain(expected);
  try {
    switch (operator) {
      case '==': return _looseEquals(a, e);
      case '===': return _strictEquals(a, e);
      case '!=': return !_looseEquals(a, e);
      case '!==': return !_strictEquals(a, e);
      case '>': case '>=': case '<': case '<=': return _compare(a, e, operator);
      case 'contains':
        if (typeof a === 'string') return a.includes(_jsString(e));
        if (Array.isArray(a)) return a.some((item) => _strictEquals(item, e));
        return false;
      case 'matches':
        try {
          return new RegExp(_jsString(e)).test(_jsString(a));
        } catch (err) {
          return false;
        }
      case 'truthy': return _isTruthy(a);
      case 'falsy': return !_isTruthy(a);
      default: return false;
    }
  } catch (err) {
    return false;
  }
}

function _buildAssertion(actual, operator, expected, message) {
  const a = _plain(actual);
  const e = _plain(expected);
  const m = _plain(message);
  const record = {
    message: _isTruthy(m) ? _jsString(m) : '',
    actualValue: a,
    expectedValue: e,
  };
  const op = _normalizeOperator(operator);
  if (!op) {
    const raw = _jsString(_plain(operator));
    record.passed = false;
    record.operator = raw;
    record.reason = 'Unsupported operator: ' + raw;
    record.condition = _toJsonText(a) + ' ' + raw + ' ' + _toJsonText(e);
    return record;
  }
  record.passed = _evaluate(a, op, e);
  record.operator = op;
  record.condition = _toJsonText(a) + ' ' + op + ' ' + _toJsonText(e);
  return record;
}

// ---------------------------------------------------------------------------
// RPC + lifecycle
// ---------------------------------------------------------------------------

function rpc(method, args) {
  return new Promise((resolve, reject) => {
    const id = ++rpcId;
    pending.set(id, { resolve, reject });
    self.postMessage({ type: 'rpc:request', id, method, args: args.map(_plain) });
  });
}

function _errorText(error) {
  if (error && (error.stack || error.message)) return String(error.stack || error.message);
  return String(error);
}

self.onmessage = async (event) => {
  const data = event.data;

  if (data && data.type === 'start') {
    const voiden = {
      request: _makeRequest(data.request),
      response: data.response === undefined ? null : data.response,
      env: {
        get: (key) => rpc('env:get', [key]),
      },
      variables: {
        get: (key) => rpc('variables:get', [key]),
        set: (key, value) => rpc('variables:set', [key, value]),
      },
      log: (...args) => {
        const level = _normalizeLevel(args[0]);
        _pushLog(level || 'log', level ? args.slice(1) : args);
      },
      assert: (actual, operator, expected, message) => {
        assertions.push(_buildAssertion(actual, operator, expected, message));
      },
      cancel: () => {
        cancelled = true;
      },
    };

    const finish = (success, error) => {
      const msg = {
        type: 'done',
        success,
        cancelled,
        logs,
        assertions,
        modifiedRequest: _snapshotRequest(voiden.request),
        modifiedResponse: _plain(voiden.response),
      };
      if (error !== undefined) msg.error = error;
      self.postMessage(msg);
    };

    try {
      const _require = self.allowRequire && typeof require !== 'undefined' ? require : undefined;
      const fn = new AsyncFunction('voiden', 'vd', 'require', data.script || '');
      await fn(voiden, voiden, _require);
      finish(true);
    } catch (error) {
      finish(false, _errorText(error));
    }
    return;
  }

  if (data && data.type === 'rpc:response') {
    const entry = pending.get(data.id);
    if (!entry) return;
    pending.delete(data.id);
    if (data.error !== undefined && data.error !== null) {
      entry.reject(new Error(data.error));
    } else {
      entry.resolve(data.result);
    }
  }
};
"""

NODE_HOST_WRAPPER = r"""
'use strict';
const { Worker } = require('worker_threads');
const _chunks = [];
process.stdin.on('data', (c) => _chunks.push(c));
process.stdin.on('end', () => {
  const _input = JSON.parse(Buffer.concat(_chunks).toString('utf-8'));
  const _envData = _input.envVars || {};
  const _variablesData = _input.variables || {};
  const _modifiedVariables = {};
  const _streamedLogs = [];
  const _timeoutMs = _input.timeoutMs || 10000;
  let _settled = false;
  let _timer = null;

  // Map the worker globals the guest expects onto worker_threads' parentPort
  const _shim = [
    "const { parentPort } = require('worker_threads');",
    "const self = { postMessage: (data) => parentPort.postMessage(data), allowRequire: true };",
    "parentPort.on('message', (data) => { if (self.onmessage) self.onmessage({ data }); });",
    "",
  ].join('\n');

  const _worker = new Worker(_shim + _input.workerSource, { eval: true, stdout: true, stderr: true });
  _worker.stdout.on('data', (c) => process.stderr.write(c));
  _worker.stderr.on('data', (c) => process.stderr.write(c));

  function _finish(result, code) {
    if (_settled) return;
    _settled = true;
    clearTimeout(_timer);
    result.modifiedVariables = _modifiedVariables;
    _worker.terminate();
    process.stdout.write(JSON.stringify(result) + '\n', () => process.exit(code));
  }

  function _failure(error) {
    return { success: false, logs: _streamedLogs, assertions: [], cancelled: false, error };
  }

  _timer = setTimeout(() => {
    _finish(_failure('Script execution timed out after ' + _timeoutMs + 'ms'), 1);
  }, _timeoutMs);

  _worker.on('message', (msg) => {
    if (!msg || typeof msg !== 'object') return;

    if (msg.type === 'log') {
      _streamedLogs.push({ level: msg.level || 'log', args: msg.args || [] });
      return;
    }

    if (msg.type === 'rpc:request') {
      const id = msg.id;
      const args = Array.isArray(msg.args) ? msg.args : [];
      try {
        let result;
        switch (msg.method) {
          case 'env:get':
            result = _envData[args[0]];
            break;
          case 'variables:get':
            result = _variablesData[args[0]];
            break;
          case 'variables:set':
            _variablesData[args[0]] = args[1];
            _modifiedVariables[args[0]] = args[1];
            result = undefined;
            break;
          default:
            throw new Error('Unknown RPC method: ' + msg.method);
        }
        _worker.postMessage({ type: 'rpc:response', id, result });
      } catch (err) {
        _worker.postMessage({ type: 'rpc:response', id, error: (err && err.message) || String(err) });
      }
      return;
    }

    if (msg.type === 'done') {
      _finish({
        success: Boolean(msg.success),
        logs: msg.logs || [],
        assertions: msg.assertions || [],
        cancelled: Boolean(msg.cancelled),
        error: msg.error,
        modifiedRequest: msg.modifiedRequest,
        modifiedResponse: msg.modifiedResponse,
      }, msg.success ? 0 : 1);
    }
  });

  _worker.on('error', (err) => {
    _finish(_failure((err && (err.stack || err.message)) || String(err)), 1);
  });

  _worker.on('exit', (code) => {
    _finish(_failure('Script worker exited unexpectedly with code ' + code), 1);
  });

  _worker.postMessage({
    type: 'start',
    script: _input.scriptBody,
    request: _input.request || {},
    response: _input.response === undefined ? null : _input.response,
  });
});
"""

WORKER_CHANNEL_SHIM = r"""
'use strict';
const vm = require('vm');
const readline = require('readline');

function _send(msg) {
  process.stdout.write(JSON.stringify(msg) + '\n');
}

function _quiet(...args) {
  process.stderr.write(args.map(String).join(' ') + '\n');
}

function _fatal(err) {
  _send({ type: 'error', error: String((err && (err.stack || err.message)) || err) });
  process.exit(1);
}

process.on('uncaughtException', _fatal);
process.on('unhandledRejection', _fatal);

const _sandbox = {
  self: { postMessage: (data) => _send(data) },
  console: { log: _quiet, info: _quiet, debug: _quiet, warn: _quiet, error: _quiet },
  setTimeout, clearTimeout, setInterval, clearInterval, queueMicrotask,
  TextEncoder, TextDecoder, URL, URLSearchParams, atob, btoa,
};
vm.createContext(_sandbox);

let _parse = null;
const _rl = readline.createInterface({ input: process.stdin, crlfDelay: Infinity });
_rl.on('line', (line) => {
  if (!line.trim()) return;
  if (_parse === null) {
    const init = JSON.parse(line);
    vm.runInContext(init.workerSource, _sandbox, { filename: 'voiden-worker.js' });
    _parse = vm.runInContext('(text) => JSON.parse(text)', _sandbox);
    return;
  }
  if (typeof _sandbox.self.onmessage === 'function') {
    _sandbox.self.onmessage({ data: _parse(line) });
  }
});
_rl.on('close', () => process.exit(0));
"""

IN_PROCESS_PRELUDE = r"""
var __vd_outbox = [];
var self = { postMessage: function (data) { __vd_outbox.push(JSON.stringify(data)); } };
var console = { log: function () {}, info: function () {}, debug: function () {}, warn: function () {}, error: function () {} };
"""

IN_PROCESS_EPILOGUE = r"""
function __vd_deliver(text) {
  if (typeof self.onmessage === 'function') self.onmessage({ data: JSON.parse(text) });
  return true;
}
function __vd_drain() {
  var out = __vd_outbox;
  __vd_outbox = [];
  return '[' + out.join(',') + ']';
}
"""

IN_PROCESS_SHIM = IN_PROCESS_PRELUDE + WORKER_SOURCE + IN_PROCESS_EPILOGUE

PYTHON_BOOTSTRAP = """\
import sys
from voiden_scripting.engines.script.guest import main
sys.exit(main())
"""
